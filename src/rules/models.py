from pydantic import BaseModel, Field, field_validator

from src.components.subscription.models import SubscriptionConfig


class SiteRules(BaseModel):
    name: str
    base_url: str = "http://localhost:8000"

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class EmailPolicyRules(BaseModel):
    max_length: int = Field(default=254, gt=0)
    blocked_domains: list[str] = Field(default_factory=list)
    allowed_domains: list[str] = Field(default_factory=list)

    @field_validator("blocked_domains", "allowed_domains")
    @classmethod
    def lowercase_domains(cls, v: list[str]) -> list[str]:
        return [d.strip().lower() for d in v if d.strip()]


class RateLimitRules(BaseModel):
    max_requests: int = Field(default=5, gt=0)
    window_seconds: int = Field(default=600, gt=0)
    same_email_cooldown_seconds: int = Field(default=60, ge=0)


class SubscriptionRules(BaseModel):
    default_source: str = "web"
    double_opt_in: bool = False
    confirmation_token_expiry_hours: int = Field(default=48, gt=0)
    email: EmailPolicyRules = Field(default_factory=EmailPolicyRules)
    rate_limit: RateLimitRules = Field(default_factory=RateLimitRules)


class Rules(BaseModel):
    """Root of rules.yaml."""

    rules_version: str
    site: SiteRules
    subscription: SubscriptionRules = Field(default_factory=SubscriptionRules)

    def to_subscription_config(self) -> SubscriptionConfig:
        sub = self.subscription
        return SubscriptionConfig(
            max_email_length=sub.email.max_length,
            blocked_domains=frozenset(sub.email.blocked_domains),
            allowed_domains=frozenset(sub.email.allowed_domains),
            rate_limit_max_requests=sub.rate_limit.max_requests,
            rate_limit_window_seconds=sub.rate_limit.window_seconds,
            same_email_cooldown_seconds=sub.rate_limit.same_email_cooldown_seconds,
            site_name=self.site.name,
            double_opt_in=sub.double_opt_in,
            confirmation_token_expiry_hours=sub.confirmation_token_expiry_hours,
            base_url=self.site.base_url,
        )
