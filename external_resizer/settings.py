from functools import lru_cache
from typing import Annotated

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MetricsConfig(BaseModel):
    path: str
    host: str
    port: int


class LeaderElectionConfig(BaseModel):
    identity: str
    lock_name: str
    namespace: str
    retry_period: float
    lease_duration: float
    renew_deadline: float


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="resizer_", case_sensitive=False)

    identity: Annotated[str, Field(default="", description="Unique resizer identity, generated when empty.")]
    kubeconfig: Annotated[
        str | None,
        Field(default=None, description="Path to a kubeconfig; in-cluster configuration is tried first otherwise."),
    ]
    resync_period: Annotated[float, Field(default=120.0, gt=0, description="Resync period for the caches, in seconds.")]
    workers: Annotated[int, Field(default=10, ge=1, description="Concurrency to process multiple resize requests.")]
    watch_timeout: Annotated[float, Field(default=60.0, gt=0)]
    kube_api_timeout: Annotated[float, Field(default=10.0, gt=0)]

    leader_election: bool = False
    leader_election_namespace: str = "kube-system"
    leader_election_retry_period: Annotated[
        float,
        Field(
            default=5.0,
            gt=0,
            description="Seconds to wait between attempts to acquire and renew leadership.",
        ),
    ]
    leader_election_lease_duration: Annotated[
        float,
        Field(
            default=15.0,
            gt=0,
            description=(
                "Seconds non-leader candidates wait after observing a leadership renewal before "
                "attempting to acquire an unrenewed leadership slot."
            ),
        ),
    ]
    leader_election_renew_deadline: Annotated[
        float,
        Field(default=10.0, gt=0, description="Seconds the acting leader retries refreshing leadership before giving up."),
    ]

    enable_metrics: bool = False
    metrics_path: str = "/metrics"
    metrics_address: Annotated[str, Field(default="", description="host:port the metrics server listens on.")]

    @model_validator(mode="after")
    def ensure_metrics_address(self: "Settings") -> "Settings":
        if self.enable_metrics:
            if not self.metrics_address:
                raise ValueError("Metric server address can't be empty")
            _split_address(self.metrics_address)
        return self

    def metrics_config(self) -> MetricsConfig | None:
        if not self.enable_metrics:
            return None
        host, port = _split_address(self.metrics_address)
        return MetricsConfig(path=self.metrics_path, host=host, port=port)

    def leader_election_config(self, identity: str, lock_name: str) -> LeaderElectionConfig | None:
        if not self.leader_election:
            return None
        return LeaderElectionConfig(
            identity=identity,
            lock_name=lock_name,
            namespace=self.leader_election_namespace,
            retry_period=self.leader_election_retry_period,
            lease_duration=self.leader_election_lease_duration,
            renew_deadline=self.leader_election_renew_deadline,
        )


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid metrics address {address!r}, expected host:port")
    return host or "0.0.0.0", int(port)


@lru_cache
def get_settings() -> Settings:
    return Settings()
