"""Identity values handed over by the external identity boundary."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

ANONYMOUS_PRINCIPAL = "2vxsx-fae"


class Identity(BaseModel):
    """Stable caller identifier supplied once the user is authenticated.

    認証ハンドシェイク自体はスコープ外で、コアが受け取るのは
    「認証済みかどうか」と安定した principal だけ。
    """

    model_config = ConfigDict(frozen=True)

    principal: str = Field(min_length=1)

    @field_validator("principal", mode="before")
    @classmethod
    def _strip_principal(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @property
    def is_anonymous(self) -> bool:
        return self.principal == ANONYMOUS_PRINCIPAL

    def __str__(self) -> str:
        return self.principal
