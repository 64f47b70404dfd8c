"""
Tests for the generator agent

The streamed call is mocked; these tests cover model routing, per-attempt
strategy, prompt content and shared-asset parsing.
"""
import json
from unittest.mock import AsyncMock, Mock

import pytest

from siteforge.base_agent import AgentError, CompletionResult
from siteforge.generator.generator_agent import GeneratorAgent, default_assets
from siteforge.generator.generator_prompt import (
    build_fallback_page,
    build_regeneration_prompt,
    default_footer,
    default_script,
    default_stylesheet,
)
from siteforge.models.schemas import PageSpec, SharedAssets

PAGES = [
    PageSpec(slug="index", display_name="Home", description="Hero and highlights"),
    PageSpec(slug="services", display_name="Services"),
    PageSpec(slug="contact", display_name="Contact"),
]


def completion(text):
    return CompletionResult(text=text, finish_reason="stop", prompt_tokens=10, completion_tokens=20)


def make_generator(text=""):
    generator = GeneratorAgent(Mock(), model="gpt-4.1", fast_model="gpt-4.1-mini")
    generator._stream_completion = AsyncMock(return_value=completion(text))
    return generator


class TestSharedAssets:

    @pytest.mark.asyncio
    async def test_payload_parsed_and_blanks_filled(self):
        payload = {"style.css": ":root { --primary: #b45309; }", "script.js": "", "nav_html": "<nav>Acme</nav>"}
        generator = make_generator("```json\n" + json.dumps(payload) + "\n```")

        assets = await generator.generate_shared_assets("Acme", "A bakery site", PAGES)

        assert assets.stylesheet_text == ":root { --primary: #b45309; }"
        assert assets.script_text == default_script()
        assert assets.nav_fragment == "<nav>Acme</nav>"
        assert assets.footer_fragment == default_footer("Acme")

    @pytest.mark.asyncio
    async def test_unparseable_payload_uses_defaults(self):
        generator = make_generator("I could not produce JSON, sorry.")

        assets = await generator.generate_shared_assets("Acme", "A bakery site", PAGES)

        assert assets == default_assets("Acme", PAGES)
        assert 'href="services.html"' in assets.nav_fragment

    @pytest.mark.asyncio
    async def test_wrongly_typed_payload_uses_defaults(self):
        generator = make_generator(json.dumps({"style.css": 42, "nav_html": ["x"]}))

        assets = await generator.generate_shared_assets("Acme", "A bakery site", PAGES)

        assert assets.stylesheet_text == default_stylesheet()

    @pytest.mark.asyncio
    async def test_call_failure_propagates(self):
        generator = make_generator()
        generator._stream_completion.side_effect = AgentError("Agent timeout after 180.0s")

        with pytest.raises(AgentError):
            await generator.generate_shared_assets("Acme", "A bakery site", PAGES)


class TestPageGeneration:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page,model", [(PAGES[1], "gpt-4.1"), (PAGES[2], "gpt-4.1-mini")])
    async def test_model_routing(self, page, model):
        generator = make_generator("<html></html>")
        assets = default_assets("Acme", PAGES)

        await generator.generate_page(page, "Acme", "A bakery site", PAGES, assets)

        assert generator._stream_completion.call_args.kwargs["model"] == model

    @pytest.mark.asyncio
    async def test_prompt_carries_shared_fragments(self):
        generator = make_generator("<html></html>")
        assets = SharedAssets(
            stylesheet_text="body {}",
            script_text="",
            nav_fragment='<nav id="shared-nav"></nav>',
            footer_fragment='<footer id="shared-footer"></footer>',
        )

        result = await generator.generate_page(PAGES[0], "Acme", "A bakery site", PAGES, assets)

        prompt = generator._stream_completion.call_args.kwargs["user_prompt"]
        assert '<nav id="shared-nav"></nav>' in prompt
        assert '<footer id="shared-footer"></footer>' in prompt
        assert "services.html (Services)" in prompt
        assert "Hero and highlights" in prompt
        assert "A bakery site" in prompt
        assert result.text == "<html></html>"

    @pytest.mark.asyncio
    async def test_first_attempt_strategy(self):
        generator = make_generator("<html></html>")

        await generator.generate_page(PAGES[1], "Acme", "p", PAGES, default_assets("Acme", PAGES))

        kwargs = generator._stream_completion.call_args.kwargs
        assert (kwargs["temperature"], kwargs["top_p"]) == (0.9, 0.95)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attempt,temperature", [(2, 0.7), (3, 0.5), (9, 0.5)])
    async def test_regeneration_cools_temperature(self, attempt, temperature):
        generator = make_generator("<html></html>")
        files = {"style.css": "body {}", "index.html": "<nav>Shared</nav><footer>Foot</footer>"}

        await generator.regenerate_page(PAGES[1], "Acme", "A bakery site", files, attempt)

        kwargs = generator._stream_completion.call_args.kwargs
        assert kwargs["temperature"] == temperature
        assert "<nav>Shared</nav>" in kwargs["user_prompt"]


class TestPrompts:

    def test_regeneration_prompt_without_index_uses_defaults(self):
        prompt = build_regeneration_prompt("about.html", "Acme", "A bakery", {"style.css": "x" * 3000})
        assert '<nav><a href="index.html">Acme</a></nav>' in prompt
        assert default_footer("Acme") in prompt
        assert "x" * 2000 + "..." in prompt
        assert "x" * 2001 not in prompt

    def test_fallback_page_is_well_formed(self):
        page = build_fallback_page(PAGES[1], "Acme", "<nav></nav>", "<footer></footer>")
        assert page.startswith("<!DOCTYPE html>")
        assert "<title>Services - Acme</title>" in page
        assert "Please click Regenerate." in page
