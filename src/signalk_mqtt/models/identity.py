"""Vessel identity model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from signalk_mqtt._constants import CONTEXT_PREFIX, MMSI_URN_PREFIX


class VesselIdentity(BaseModel):
    """Stable vessel identifier used as MQTT client id and topic root.

    Parameters
    ----------
    mmsi : str or None
        Vessel MMSI, preferred when present.
    self_id : str or None
        Signal K self identifier (e.g. ``urn:mrn:signalk:uuid:...``),
        used when no MMSI is known.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    mmsi: str | None = None
    self_id: str | None = None

    @field_validator("mmsi", "self_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @model_validator(mode="after")
    def _require_one(self) -> VesselIdentity:
        if self.mmsi is None and self.self_id is None:
            raise ValueError("vessel identity needs an mmsi or a self id")
        return self

    @classmethod
    def from_self_urn(cls, urn: str) -> VesselIdentity:
        """Build an identity from a Signal K ``self`` reference.

        Accepts both ``vessels.urn:...`` and bare ``urn:...`` forms.
        """
        value = urn.strip()
        if value.startswith(CONTEXT_PREFIX):
            value = value[len(CONTEXT_PREFIX) :]
        if value.startswith(MMSI_URN_PREFIX):
            return cls(mmsi=value[len(MMSI_URN_PREFIX) :], self_id=value)
        return cls(self_id=value)

    @property
    def client_id(self) -> str:
        return self.mmsi or self.self_id or ""

    @property
    def context(self) -> str:
        """Message context and topic root, ``vessels.<client_id>``."""
        return f"{CONTEXT_PREFIX}{self.client_id}"
