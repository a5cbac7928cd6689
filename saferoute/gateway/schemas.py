"""
Inbound event schemas for the connection gateway.

Every inbound payload is validated against one of these models before
any engine call. Field names follow the client wire format; `lga` and
`adminToken` are accepted as aliases of `region` and `adminCredential`.
"""

from typing import Any, Optional, Type, TypeVar
import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from saferoute.core.errors import ValidationError
from saferoute.core.models import Severity
from saferoute.core.policy import SEVERITY_ALIASES, normalize_severity

T = TypeVar("T", bound=BaseModel)

def parse_payload(schema: Type[T], data: Any) -> T:
    """
    인바운드 페이로드를 스키마로 검증합니다.

    Raises:
        ValidationError: 검증 실패 (detail은 "필드: 메시지" 목록)
    """
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as e:
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'data'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"invalid {schema.__name__} payload", detail=detail) from e

def known_severity(v: Any) -> Severity:
    """클라이언트 심각도 어휘(moderate, severe 등)를 내부 심각도로 바꿉니다. 어휘 밖의 값은 거부합니다."""
    if isinstance(v, Severity):
        return v
    key = v.strip().lower() if isinstance(v, str) else v
    if isinstance(key, bool) or not isinstance(key, (str, int)) or key not in SEVERITY_ALIASES:
        raise ValueError(f"unknown severity {v!r}")
    return normalize_severity(key)

class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

class UpdateLocation(_Inbound):
    """update-location"""
    latitude: float = Field(ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(ge=-180, le=180, allow_inf_nan=False)
    region: Optional[str] = Field(default=None, validation_alias=AliasChoices("region", "lga"))

class SubmitFloodReport(_Inbound):
    """submit-flood-report"""
    latitude: float = Field(ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(ge=-180, le=180, allow_inf_nan=False)
    description: str = Field(min_length=1)
    severity: Severity
    region: str = Field(min_length=1, validation_alias=AliasChoices("region", "lga"))
    location_name: str = Field(default="Unknown", validation_alias=AliasChoices("locationName", "location_name"))

    check_severity = field_validator("severity", mode="before")(known_severity)

class GetNearbyHotspots(_Inbound):
    """get-nearby-hotspots"""
    latitude: float = Field(ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(ge=-180, le=180, allow_inf_nan=False)
    radius: float = Field(default=5000, gt=0, allow_inf_nan=False)
    region: Optional[str] = Field(default=None, validation_alias=AliasChoices("region", "lga"))

class AdminBroadcast(_Inbound):
    """admin-broadcast"""
    message: str = Field(min_length=1)
    severity: Severity = Severity.MEDIUM
    region: str = Field(min_length=1, validation_alias=AliasChoices("region", "lga"))
    admin_credential: str = Field(validation_alias=AliasChoices("adminCredential", "adminToken", "admin_credential"))

    check_severity = field_validator("severity", mode="before")(known_severity)

    @field_validator("admin_credential")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("admin credential must not be empty")
        return v

__all__ = ["UpdateLocation", "SubmitFloodReport", "GetNearbyHotspots", "AdminBroadcast", "parse_payload"]
