"""
Object key and URL helpers

Keys are forward-slash separated with no leading slash; a trailing slash
marks a directory placeholder object.
"""

from typing import Optional
from urllib.parse import quote, unquote, urlsplit


class PathCodec:
    """Key normalization and CDN/public domain prefixing for one disk"""

    def __init__(self, domain: Optional[str] = None, scheme: str = "http"):
        self.scheme = scheme or "http"
        self.host = self.normalize_host(domain, self.scheme) if domain else None

    @property
    def has_domain(self) -> bool:
        return self.host is not None

    @staticmethod
    def normalize_host(domain: str, scheme: str = "http") -> str:
        """Add a scheme when missing and drop the trailing slash"""
        domain = domain.strip()
        lowered = domain.lower()
        if not (lowered.startswith("http://") or lowered.startswith("https://")):
            domain = f"{scheme}://{domain}"
        return domain.rstrip("/")

    @staticmethod
    def normalize_key(path: str) -> str:
        return (path or "").lstrip("/")

    @staticmethod
    def directory_key(dirname: str) -> str:
        return dirname.strip("/") + "/"

    @staticmethod
    def listing_prefix(directory: str) -> str:
        """Prefix to list a directory: '' for the bucket root, 'dir/' otherwise"""
        directory = (directory or "").strip("/")
        return f"{directory}/" if directory else ""

    @staticmethod
    def encode_key(path: str) -> str:
        """Percent-encode each path segment, keeping the separators"""
        return "/".join(quote(segment, safe="") for segment in path.split("/"))

    def apply_prefix(self, path: str) -> str:
        """Join the CDN/public host and a key"""
        if self.host is None:
            return self.normalize_key(path)
        return f"{self.host}/{self.normalize_key(path)}"

    def rewrite(self, url: str) -> str:
        """
        Move a provider URL onto the CDN/public host

        The path is percent-decoded so the CDN URL shows the readable key;
        the query (signature parameters included) is kept as is.
        """
        if self.host is None:
            return url
        parts = urlsplit(url)
        rewritten = f"{self.host}/{unquote(parts.path).lstrip('/')}"
        if parts.query:
            rewritten = f"{rewritten}?{parts.query}"
        return rewritten

    def public_url(self, path: str, native_url: Optional[str] = None) -> Optional[str]:
        """CDN URL for a key, or the provider's native URL without a domain"""
        if self.host is not None:
            return self.apply_prefix(path)
        return native_url
