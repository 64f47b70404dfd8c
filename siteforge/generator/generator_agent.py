"""Generator agent - shared assets, per-page and regeneration calls for multi-page static sites"""
import logging
from typing import Dict, List

from pydantic import ValidationError

from siteforge.base_agent import BaseAgent, CompletionResult
from siteforge.config.generator_config import (
    SHARED_ASSETS_MAX_TOKENS,
    get_attempt_config,
    page_max_tokens,
    page_model,
)
from siteforge.core.extractor import safe_parse_json
from siteforge.generator.generator_prompt import (
    GENERATOR_SYSTEM_PROMPT,
    build_page_prompt,
    build_regeneration_prompt,
    build_shared_assets_prompt,
    default_footer,
    default_nav,
    default_script,
    default_stylesheet,
)
from siteforge.generator.generator_schemas import SharedAssetsPayload
from siteforge.models.schemas import PageSpec, SharedAssets

logger = logging.getLogger(__name__)


def default_assets(site_name: str, pages: List[PageSpec]) -> SharedAssets:
    """Built-in stylesheet, script, nav and footer used when the shared-asset call fails."""
    return SharedAssets(
        stylesheet_text=default_stylesheet(),
        script_text=default_script(),
        nav_fragment=default_nav(site_name, pages),
        footer_fragment=default_footer(site_name),
    )


class GeneratorAgent(BaseAgent):
    """Generator agent - produces the shared assets and each page's raw markup"""

    # Initializes generator with the premium model for content pages and a fast model for simple ones.
    # Per-call retries live in BaseAgent; the orchestrator owns the regeneration loop.
    def __init__(
        self,
        client,
        model: str = "gpt-4.1",
        fast_model: str = "gpt-4.1-mini",
        temperature: float = 0.7,
        timeout: float = 180.0,
        max_retries: int = 2,
        retry_backoff: float = 3.0,
    ):
        super().__init__(
            client,
            model,
            temperature,
            agent_name="Generator",
            timeout=timeout,
            max_retries=max_retries,
            retry_backoff=retry_backoff,
        )
        self.fast_model = fast_model

    async def generate_shared_assets(self, site_name: str, root_prompt: str, pages: List[PageSpec]) -> SharedAssets:
        """
        Generate stylesheet, script, nav and footer in one call.

        Missing or unparseable keys fall back to the built-in defaults.

        Raises:
            AgentError: the call itself failed (timeout, service error, malformed stream)
        """
        logger.info(f"[Generator] Generating shared assets | site: {site_name} | pages: {len(pages)}")
        defaults = default_assets(site_name, pages)
        result = await self._stream_completion(
            system_prompt=GENERATOR_SYSTEM_PROMPT,
            user_prompt=build_shared_assets_prompt(site_name, root_prompt, pages),
            max_tokens=SHARED_ASSETS_MAX_TOKENS,
        )

        parsed = safe_parse_json(result.text)
        try:
            payload = SharedAssetsPayload.model_validate(parsed)
        except ValidationError as e:
            logger.warning(f"[Generator] ⚠ Shared asset payload invalid, using defaults | error: {e}")
            return defaults

        assets = payload.to_assets(defaults)
        logger.info(
            f"[Generator] ✓ Shared assets ready | "
            f"css: {len(assets.stylesheet_text)} chars | "
            f"js: {len(assets.script_text)} chars | "
            f"nav_from_model: {bool(payload.nav_html.strip())} | "
            f"footer_from_model: {bool(payload.footer_html.strip())}"
        )
        return assets

    async def generate_page(
        self,
        page: PageSpec,
        site_name: str,
        root_prompt: str,
        pages: List[PageSpec],
        assets: SharedAssets,
    ) -> CompletionResult:
        """
        Generate one page's raw output.

        Args:
            page: Page to generate
            site_name: Site display name
            root_prompt: The user's original request
            pages: Every page of the site
            assets: Shared assets; nav/footer are pasted verbatim

        Returns:
            CompletionResult with the raw model text (extraction happens downstream)
        """
        strategy = get_attempt_config(1)
        logger.info(
            f"[Generator] Generating page | slug: {page.slug} | "
            f"model: {page_model(page.slug, self.model, self.fast_model)} | "
            f"max_tokens: {page_max_tokens(page.slug)}"
        )
        return await self._stream_completion(
            system_prompt=GENERATOR_SYSTEM_PROMPT,
            user_prompt=build_page_prompt(
                page, site_name, root_prompt, pages, assets.nav_fragment, assets.footer_fragment
            ),
            max_tokens=page_max_tokens(page.slug),
            model=page_model(page.slug, self.model, self.fast_model),
            temperature=strategy["temperature"],
            top_p=strategy["top_p"],
        )

    async def regenerate_page(
        self,
        page: PageSpec,
        site_name: str,
        root_prompt: str,
        files: Dict[str, str],
        attempt: int,
    ) -> CompletionResult:
        """
        Regenerate a page that failed the content or forbidden-construct checks.

        Args:
            page: Page to regenerate
            site_name: Site display name
            root_prompt: The user's original request
            files: Files accepted so far (stylesheet and index nav/footer are reused)
            attempt: 1-based generation attempt number (2 for the first regeneration)
        """
        strategy = get_attempt_config(attempt)
        logger.info(
            f"[Generator] Regenerating page | slug: {page.slug} | attempt: {attempt} | "
            f"strategy: {strategy['description']}"
        )
        return await self._stream_completion(
            system_prompt=GENERATOR_SYSTEM_PROMPT,
            user_prompt=build_regeneration_prompt(page.filename, site_name, root_prompt, files),
            max_tokens=page_max_tokens(page.slug),
            model=page_model(page.slug, self.model, self.fast_model),
            temperature=strategy["temperature"],
            top_p=strategy["top_p"],
        )
