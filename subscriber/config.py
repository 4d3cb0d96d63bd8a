from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Subscriber process settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")
    
    # Host configuration (HostSettings.json + configuration__* overrides)
    host_settings_file: str = Field(default="HostSettings.json")
    
    # Certificates
    certificate_directory: str = Field(default_factory=lambda: str(Path.home() / ".subscriber" / "certs"))
    server_certificate_validity_days: int = Field(default=90)
    identity_certificate_validity_days: int = Field(default=90)
    
    # Webhook
    webhook_host: str = Field(default="0.0.0.0")
    webhook_port: int = Field(default=4430)
    webhook_path: str = Field(default="/api/subscriber")
    
    # IoT Edge workload API (injected by the edge runtime)
    iotedge_workloaduri: str = Field(default="unix:///var/run/iotedge/workload.sock")
    iotedge_moduleid: str = Field(default="subscriber")
    iotedge_modulegenerationid: str = Field(default="")
    iotedge_apiversion: str = Field(default="2019-01-30")
    iotedge_gatewayhostname: str = Field(default="")
    
    # Timings (seconds)
    certificate_propagation_delay_seconds: float = Field(default=120)
    topic_retry_interval_seconds: float = Field(default=30)
    request_timeout_seconds: float = Field(default=30)
    
    # App
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")


# Singleton instance
settings = Settings()
