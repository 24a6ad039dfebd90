from pydantic import BaseModel, ConfigDict, Field


class CacheSettings(BaseModel):
    """Limits of the stunnel cache"""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    max_stunnel: int = Field(default=22, ge=1, le=1000, description="Maximum cached stunnels")
    max_age: float = Field(
        default=180.0 * 60.0, gt=0, description="Seconds since connect before eviction"
    )
    max_idle: float = Field(
        default=5.0 * 60.0, gt=0, description="Seconds since donation before eviction"
    )
