from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_INTERNET_IDENTITY_CANISTER_ID = "rdmx6-jaaaa-aaaaa-aaadq-cai"
MAINNET_IDENTITY_PROVIDER_URL = "https://identity.ic0.app"
_KNOWN_NETWORKS = frozenset({"local", "playground", "ic"})


class Settings(BaseSettings):
    """Client settings loaded from environment variables.

    環境変数から読み込まれるクライアント設定。
    - environment: 実行環境（development/staging/production など）
    - network: 接続先ネットワーク（local/playground/ic）
    - firestore_*: リモートストア（Firestore）の接続情報
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )
    network: str = Field(
        default="local",
        description="Target network (local/playground/ic) / 接続先ネットワーク",
        validation_alias=AliasChoices("network", "dfx_network"),
    )
    internet_identity_canister_id: str = Field(
        default=DEFAULT_INTERNET_IDENTITY_CANISTER_ID,
        description=(
            "Identity provider canister id used on the local network / "
            "ローカルネットワークで利用する認証プロバイダのキャニスターID"
        ),
        validation_alias=AliasChoices(
            "internet_identity_canister_id",
            "canister_id_internet_identity",
        ),
    )
    identity_provider_port: int = Field(
        default=4943,
        description="Port of the local identity provider / ローカル認証プロバイダのポート",
    )

    # --- リモートストア（Firestore） ---
    firestore_project_id: str | None = Field(
        default=None,
        description="Firestore project id / Firestore のプロジェクトID",
    )
    gcp_project_id: str | None = Field(
        default=None,
        description="Fallback GCP project id / 予備の GCP プロジェクトID",
        validation_alias=AliasChoices("gcp_project_id", "google_cloud_project"),
    )
    firestore_emulator_host: str | None = Field(
        default=None,
        description="Firestore emulator host (host:port) / Firestore エミュレータのホスト",
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level / ルートロガーのログレベル",
    )

    # --- Strict mode ---
    strict_mode: bool = Field(
        default=True,
        description="Fail fast on missing/invalid configuration (disable only for tests)",
    )

    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("network", mode="before")
    @classmethod
    def _normalise_network(cls, raw_network: object) -> str:
        """Normalise the network name and reject unknown values.

        なぜ: ネットワーク名の綴り違いを許すと、本番の認証プロバイダではなく
        ローカル URL へ黙ってフォールバックしてしまうため、読み込み時に拒否する。
        """

        network = str(raw_network or "local").strip().lower() or "local"
        if network not in _KNOWN_NETWORKS:
            raise ValueError(
                f"NETWORK must be one of {sorted(_KNOWN_NETWORKS)}, got {network!r}",
            )
        return network

    @field_validator("log_level", mode="after")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper() or "INFO"

    @model_validator(mode="after")
    def _require_project_in_production(self) -> "Settings":
        """Require a Firestore project id when running strictly in production.

        本番で project id が未設定のままだと google-cloud-firestore が ADC の
        既定プロジェクトへ暗黙に接続するため、strict_mode では起動時に失敗させる。
        """

        environment_name = (self.environment or "").strip().lower()
        if (
            self.strict_mode
            and environment_name == "production"
            and not (self.firestore_project_id or self.gcp_project_id)
        ):
            raise ValueError(
                "FIRESTORE_PROJECT_ID (or GOOGLE_CLOUD_PROJECT) must be set in production",
            )
        return self

    @property
    def identity_provider_url(self) -> str:
        """Resolve the identity provider URL for the configured network."""

        if self.network == "ic":
            return MAINNET_IDENTITY_PROVIDER_URL
        if self.network == "playground":
            canister_id = DEFAULT_INTERNET_IDENTITY_CANISTER_ID
        else:
            canister_id = (
                self.internet_identity_canister_id or DEFAULT_INTERNET_IDENTITY_CANISTER_ID
            ).strip()
        return f"http://{canister_id}.localhost:{self.identity_provider_port}"


settings = Settings()
