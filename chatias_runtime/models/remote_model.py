"""Remote model descriptors tried by the summarizer."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RemoteModel:
    """A provider/model pair exposed by the runtime.

    The configured list of these is a priority order and is never re-sorted.
    """

    provider_id: str
    model_id: str

    @classmethod
    def parse(cls, value: str) -> "RemoteModel":
        """Parse a ``provider/model`` string (the model part may contain slashes)."""
        provider, sep, model = value.strip().partition("/")
        if not sep or not provider or not model:
            raise ValueError(f"Invalid remote model '{value}', expected 'provider/model'")
        return cls(provider_id=provider, model_id=model)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteModel":
        provider = data.get("provider_id") or data.get("providerID")
        model = data.get("model_id") or data.get("modelID")
        if not provider or not model:
            raise ValueError(f"Remote model entry needs provider_id and model_id: {data}")
        return cls(provider_id=provider, model_id=model)

    def to_wire(self) -> dict[str, str]:
        """Shape expected by the runtime prompt endpoint."""
        return {"providerID": self.provider_id, "modelID": self.model_id}

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.model_id}"
