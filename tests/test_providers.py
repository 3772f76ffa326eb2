"""
tests/test_providers.py
Tests for the provider capability registry.
"""

from __future__ import annotations

import pytest

from schemagen.providers import ProviderDescriptor, ProviderRegistry, default_registry


class TestBuiltins:
    def test_builtin_names(self) -> None:
        assert default_registry().names() == ["claude", "ollama", "openai", "s3", "sendgrid", "stripe"]

    def test_each_call_returns_a_fresh_registry(self) -> None:
        first = default_registry()
        first.register(ProviderDescriptor(name="pigeon", category="mail"))
        assert "pigeon" not in default_registry()

    def test_by_category(self) -> None:
        ai = default_registry().by_category("ai")
        assert sorted(d.name for d in ai) == ["claude", "ollama", "openai"]
        assert default_registry().by_category("quantum") == []

    def test_stripe_requirements(self) -> None:
        stripe = default_registry().require("stripe")
        assert stripe.category == "payments"
        assert stripe.missing_config({}) == ["STRIPE_SECRET_KEY", "STRIPE_PUBLISHABLE_KEY"]
        assert stripe.missing_config({"STRIPE_SECRET_KEY": "x"}) == ["STRIPE_PUBLISHABLE_KEY"]
        assert stripe.import_dict() == {"stripe": set()}

    def test_import_dict_is_a_copy(self) -> None:
        openai = default_registry().require("openai")
        imports = openai.import_dict()
        imports["openai"].add("AsyncOpenAI")
        assert openai.import_dict() == {"openai": {"OpenAI"}}


class TestProviderRegistry:
    def test_lookup_is_case_insensitive(self) -> None:
        registry = default_registry()
        assert registry.get("OpenAI") is registry.get("openai")
        assert "SENDGRID" in registry
        assert 42 not in registry

    def test_unknown_provider(self) -> None:
        registry = default_registry()
        assert registry.get("carrier-pigeon") is None
        with pytest.raises(KeyError, match="Unknown provider 'carrier-pigeon'"):
            registry.require("carrier-pigeon")

    def test_duplicate_registration(self) -> None:
        registry = ProviderRegistry([ProviderDescriptor(name="mail", category="email")])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(ProviderDescriptor(name="MAIL", category="email"))

        replacement = ProviderDescriptor(name="mail", category="email", required_config=("MAIL_KEY",))
        registry.register(replacement, replace=True)
        assert registry.require("mail") is replacement
        assert len(registry) == 1

    def test_iteration_is_sorted(self) -> None:
        registry = ProviderRegistry([
            ProviderDescriptor(name="zeta", category="x"),
            ProviderDescriptor(name="alpha", category="x"),
        ])
        assert [d.name for d in registry] == ["alpha", "zeta"]

    def test_descriptor_is_frozen(self) -> None:
        descriptor = ProviderDescriptor(name="mail", category="email")
        with pytest.raises(AttributeError):
            descriptor.name = "other"  # type: ignore[misc]
