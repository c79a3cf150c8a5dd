from typing import Any, Callable, Coroutine

from fastapi import APIRouter, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute

from storefront.core.errors import ValidationAppError
from storefront.core.rate_limit import enforce_contact_rate_limit
from storefront.schemas.contact import ContactMeta, ContactRequest, ContactResponse
from storefront.services.contact_service import ContactService


class ContactFormRoute(APIRoute):
    """Route class answering invalid form bodies with a 400 ValidationAppError.

    The storefront form expects the CMS-style ``400 Bad Request`` rather than
    FastAPI's default 422.
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        handler = super().get_route_handler()

        async def contact_route_handler(request: Request) -> Response:
            try:
                return await handler(request)
            except RequestValidationError as exc:
                fields = sorted({str(error["loc"][-1]) for error in exc.errors() if error.get("loc")})
                raise ValidationAppError(
                    code="invalid_contact_message",
                    message=request.app.state.settings.contact.validation_message,
                    details={"context": {"fields": fields}},
                ) from exc

        return contact_route_handler


router = APIRouter(tags=["Contact"], route_class=ContactFormRoute)


def get_contact_service(request: Request) -> ContactService:
    return request.app.state.contact_service


@router.post(
    "/api/contact-messages",
    response_model=ContactResponse,
    dependencies=[Depends(enforce_contact_rate_limit)],
)
async def create_contact_message(
    body: ContactRequest,
    request: Request,
    service: ContactService = Depends(get_contact_service),
) -> ContactResponse:
    """Accept a contact form submission.

    Rate limited per client by the dedicated contact limiter (3 requests per
    15 minutes by default). The message is stored as a CMS entry, then the
    shop is notified by e-mail; a failed notification does not fail the
    submission, a failed store does (502/503).

    Args:
        body: Contact form fields nested under ``data``.

    Returns:
        ContactResponse: The stored message and a confirmation text.
    """
    message = await service.submit(body.data)
    return ContactResponse(
        data=message,
        meta=ContactMeta(message=request.app.state.settings.contact.success_message),
    )
