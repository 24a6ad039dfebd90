"""Pydantic configuration for stunnel launches."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..common.utils import validate_host, validate_port

DEFAULT_BINARY_CANDIDATES = [
    "/opt/xensource/libexec/stunnel/stunnel",
    "/usr/sbin/stunnel4",
    "/usr/sbin/stunnel",
    "/usr/bin/stunnel4",
    "/usr/bin/stunnel",
]


class StunnelSettings(BaseModel):
    """Process-wide settings for locating and driving the stunnel binary"""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
    )

    binary_env_var: str = Field(
        default="XE_STUNNEL", description="Environment variable overriding the binary path"
    )
    binary_candidates: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BINARY_CANDIDATES),
        description="Ordered binary paths, first executable one wins",
    )
    use_new_stunnel: bool = Field(
        default=False, description="Drive the command-line configured stunnel variant"
    )
    new_stunnel_path: str = Field(default="/usr/sbin/stunnelng")

    certificate_path: str = Field(default="/etc/stunnel/certs", description="CApath directory")
    crl_path: str = Field(default="/etc/stunnel/crls", description="CRLpath directory")
    verify_certificates_ctrl: str = Field(
        default="/var/xapi/verify_certificates",
        description="Sentinel file enabling certificate verification by default",
    )

    max_attempts: int = Field(default=5, ge=1, le=50, description="Launch attempts per connect")
    retry_delay: float = Field(default=3.0, ge=0.0, le=60.0, description="Seconds between attempts")
    log_prefix: str = Field(default="stunnel", min_length=1, description="Temporary log file prefix")


class TunnelRequest(BaseModel):
    """One stunnel launch request; renders the stunnel configuration"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = Field(min_length=1, description="Remote host")
    port: int = Field(description="Remote port")
    verify_cert: bool = False
    extended_diagnosis: bool = False

    @field_validator("host")
    @classmethod
    def check_host(cls, v: str) -> str:
        return validate_host(v)

    @field_validator("port")
    @classmethod
    def check_port(cls, v: int) -> int:
        validate_port(v)
        return v

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"

    def to_config_text(self, settings: StunnelSettings) -> str:
        """Render the configuration stunnel reads from its config descriptor.

        Args:
            settings: Settings holding the certificate and CRL directories

        Returns:
            Newline terminated configuration lines
        """
        lines = [
            "client=yes",
            "foreground=yes",
            "socket = r:TCP_NODELAY=1",
            f"connect={self.target}",
        ]
        if self.extended_diagnosis:
            lines.append("debug=4")
        if self.verify_cert:
            lines.extend(
                [
                    "verify=2",
                    f"CApath={settings.certificate_path}",
                    f"CRLpath={settings.crl_path}",
                ]
            )
        return "".join(f"{line}\n" for line in lines)

    def to_command_line(self) -> list[str]:
        """Arguments for the command-line configured stunnel variant.

        That variant has no certificate verification support.
        """
        assert not self.verify_cert, "certificate verification unsupported by stunnelng"
        args = ["-m", "client", "-s", "-", "-d", self.target]
        if self.extended_diagnosis:
            return ["-v", *args]
        return args
