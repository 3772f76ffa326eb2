# File: schemagen/providers.py
"""
schemagen - Provider Capability Registry
==========================================
Models annotated with ``@@service("<provider>")`` get an integration client
in their generated service. What that client needs (imports, the setup
snippet, required configuration keys) comes from a ``ProviderDescriptor``
looked up here, so adding a provider means registering a descriptor, not
touching the analyzer, the orchestrator or the layer generators.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.providers")


@dataclass(frozen=True, slots=True)
class ProviderDescriptor:
    """Everything a generator needs to wire one external provider."""

    name: str
    category: str
    imports: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    client_setup: str = ""
    required_config: Tuple[str, ...] = ()
    optional_config: Tuple[str, ...] = ()

    def import_dict(self) -> Dict[str, Set[str]]:
        """Imports in the ``module → names`` shape used by ``build_import_block``."""
        return {module: set(names) for module, names in self.imports.items()}

    def missing_config(self, provided: Mapping[str, object]) -> List[str]:
        return [key for key in self.required_config if key not in provided]


class ProviderRegistry:
    """
    Name → ``ProviderDescriptor`` lookup table.

    Usage::

        registry = default_registry()
        stripe = registry.require("stripe")
    """

    def __init__(self, descriptors: Iterable[ProviderDescriptor] = ()) -> None:
        self._descriptors: Dict[str, ProviderDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: ProviderDescriptor, *, replace: bool = False) -> None:
        key: str = descriptor.name.lower()
        if key in self._descriptors and not replace:
            raise ValueError(f"Provider '{descriptor.name}' is already registered.")
        self._descriptors[key] = descriptor
        logger.debug("Registered provider %s (%s).", descriptor.name, descriptor.category)

    def get(self, name: str) -> Optional[ProviderDescriptor]:
        return self._descriptors.get(name.lower())

    def require(self, name: str) -> ProviderDescriptor:
        descriptor = self.get(name)
        if descriptor is None:
            raise KeyError(
                f"Unknown provider '{name}'. Registered: {sorted(self._descriptors)}"
            )
        return descriptor

    def by_category(self, category: str) -> List[ProviderDescriptor]:
        return [d for d in self._descriptors.values() if d.category == category]

    def names(self) -> List[str]:
        return sorted(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._descriptors

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self._descriptors[k] for k in sorted(self._descriptors))

    def __len__(self) -> int:
        return len(self._descriptors)


# ---------------------------------------------------------------------------
# Built-in descriptors
# ---------------------------------------------------------------------------

_BUILTIN_PROVIDERS: Tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        name="openai",
        category="ai",
        imports={"openai": ("OpenAI",)},
        client_setup="OpenAI(api_key=settings['OPENAI_API_KEY'])",
        required_config=("OPENAI_API_KEY",),
        optional_config=("OPENAI_ORG_ID",),
    ),
    ProviderDescriptor(
        name="claude",
        category="ai",
        imports={"anthropic": ("Anthropic",)},
        client_setup="Anthropic(api_key=settings['ANTHROPIC_API_KEY'])",
        required_config=("ANTHROPIC_API_KEY",),
    ),
    ProviderDescriptor(
        name="ollama",
        category="ai",
        imports={"httpx": ()},
        client_setup="httpx.Client(base_url=settings.get('OLLAMA_ENDPOINT', 'http://localhost:11434'))",
        optional_config=("OLLAMA_ENDPOINT",),
    ),
    ProviderDescriptor(
        name="stripe",
        category="payments",
        imports={"stripe": ()},
        client_setup="stripe.StripeClient(settings['STRIPE_SECRET_KEY'])",
        required_config=("STRIPE_SECRET_KEY", "STRIPE_PUBLISHABLE_KEY"),
        optional_config=("STRIPE_WEBHOOK_SECRET",),
    ),
    ProviderDescriptor(
        name="s3",
        category="storage",
        imports={"boto3": ()},
        client_setup=(
            "boto3.client('s3', region_name=settings['AWS_REGION'], "
            "aws_access_key_id=settings['AWS_ACCESS_KEY_ID'], "
            "aws_secret_access_key=settings['AWS_SECRET_ACCESS_KEY'])"
        ),
        required_config=(
            "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_REGION", "AWS_S3_BUCKET",
        ),
    ),
    ProviderDescriptor(
        name="sendgrid",
        category="email",
        imports={"sendgrid": ("SendGridAPIClient",)},
        client_setup="SendGridAPIClient(settings['SENDGRID_API_KEY'])",
        required_config=("SENDGRID_API_KEY",),
        optional_config=("SENDGRID_FROM_EMAIL",),
    ),
)


def default_registry() -> ProviderRegistry:
    """A fresh registry holding the built-in providers."""
    return ProviderRegistry(_BUILTIN_PROVIDERS)


__all__: List[str] = ["ProviderDescriptor", "ProviderRegistry", "default_registry"]
