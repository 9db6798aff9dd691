"""
Abstract base class for image-generation backends.

The worker calls client.invoke(prompt, style, format) without knowing
which provider is behind it. Backends must classify every failure:

- TransientError: timeouts, connection errors, 408/429/5xx. The worker
  retries these with backoff.
- PermanentError: the provider understood the request and refused it
  (4xx, content-policy filter). Retrying cannot help, so the job fails
  at once with PROVIDER_REJECTED.

To add a backend:
1. Subclass AbstractGenerationClient and implement invoke() and backend
2. Add it to generation/registry.py
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from models.enums import GenerationStyle, ImageFormat


@dataclass(frozen=True)
class GeneratedAsset:
    data: bytes
    content_type: str

    @property
    def extension(self) -> str:
        return CONTENT_TYPE_EXTENSIONS.get(self.content_type, "bin")


CONTENT_TYPE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


class AbstractGenerationClient(ABC):

    @abstractmethod
    def invoke(self, prompt: str, style: GenerationStyle, format: ImageFormat) -> GeneratedAsset:
        """
        Generate one image.

        Raises:
            TransientError: retryable failure
            PermanentError: the provider rejected the request
        """
        ...

    @property
    @abstractmethod
    def backend(self) -> str:
        """Name used in GENERATION_BACKEND (e.g., 'http', 'simulated')."""
        ...

    def close(self) -> None:
        """Release network resources. Default: nothing to release."""
