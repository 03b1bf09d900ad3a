"""GameCentre Server Configuration."""

from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class DeviceSpec(BaseModel):
    id: str
    name: str
    kind: str  # 'console' | 'pc'


class Settings(BaseSettings):
    # Server
    server_name: str = "Mario Gaming Centre"
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: str = "INFO"

    # Paths
    data_dir: Path = Path.home() / "gamecentre" / "data"

    # Database
    db_path: Path = Path.home() / "gamecentre" / "data" / "gamecentre.db"

    # One-time codes
    code_expire_seconds: int = 300  # 5 minutes
    code_max_attempts: int = 3

    # Sessions
    session_warning_seconds: int = 300  # "5 minutes remaining" notice
    auto_reject_expired_codes: bool = True

    # Payment
    payment_latency_seconds: float = 1.5

    # Catalogues
    duration_prices: dict[int, float] = {30: 5.0, 60: 8.0, 120: 15.0}
    devices: list[DeviceSpec] = [
        DeviceSpec(id="CONSOLE-01", name="Console 1", kind="console"),
        DeviceSpec(id="CONSOLE-02", name="Console 2", kind="console"),
        DeviceSpec(id="PC-01", name="PC 1", kind="pc"),
        DeviceSpec(id="PC-02", name="PC 2", kind="pc"),
        DeviceSpec(id="PC-03", name="PC 3", kind="pc"),
    ]

    model_config = {"env_prefix": "GAMECENTRE_"}

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in [self.data_dir, self.db_path.parent]:
            d.mkdir(parents=True, exist_ok=True)


settings = Settings()
settings.ensure_dirs()
