"""Upstream adapters - clients for the headless CMS behind the edge."""

from storefront.adapters.upstream.cms_client import CmsClient, UpstreamReply

__all__ = ["CmsClient", "UpstreamReply"]
