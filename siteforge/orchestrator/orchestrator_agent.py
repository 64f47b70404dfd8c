"""Page orchestrator - drives multi-page generation end to end"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from openai import OpenAI

from siteforge.config.generator_config import DEFAULT_WEIGHTS, ContentThresholds, ScoringWeights
from siteforge.core.config import Settings, settings as app_settings
from siteforge.core.extractor import extract
from siteforge.core.gap_repairer import repair_document
from siteforge.core.policy_injector import apply_policies
from siteforge.core.state_machine import PageLifecycle, PageState
from siteforge.core.structural_validator import compute_quality_score, needs_regeneration, validate, validate_site
from siteforge.core.telemetry import RequestContext, enrich_error_context, track_phase
from siteforge.generator.generator_agent import GeneratorAgent, default_assets
from siteforge.generator.generator_prompt import build_fallback_page
from siteforge.generator.page_detector import detect_output_mode, resolve_pages
from siteforge.models.errors import ApplicationError, ErrorCode
from siteforge.models.schemas import (
    SCRIPT_FILENAME,
    STYLESHEET_FILENAME,
    GenerationRequest,
    OutputMode,
    PageArtifact,
    PageSpec,
    PipelineResult,
    SharedAssets,
    ValidationReport,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]


@dataclass
class PageAssessment:
    """Outcome of the low-content and forbidden-construct checks for one page"""
    filename: str
    report: ValidationReport
    needs_regeneration: bool
    failure: str = ""

    @property
    def first_issue(self) -> str:
        if self.failure:
            return self.failure
        criticals = self.report.critical_issues
        return criticals[0].message if criticals else "generation failed"


@dataclass
class _PageRun:
    page: PageSpec
    lifecycle: PageLifecycle
    artifact: Optional[PageArtifact] = None
    assessment: Optional[PageAssessment] = None
    failure: str = ""
    issues_seen: List[str] = field(default_factory=list)


class PipelineCancelled(Exception):
    """Cooperative cancellation requested through the cancel event"""


class PageOrchestrator:
    """Orchestrator - coordinates detection, generation, validation, repair and injection"""

    # Builds the generator from settings unless one is injected (tests inject a mock).
    # Thresholds and weights default to the configured values.
    def __init__(
        self,
        generator: Optional[GeneratorAgent] = None,
        settings: Optional[Settings] = None,
        thresholds: Optional[ContentThresholds] = None,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
    ):
        self.settings = settings or app_settings
        if generator is None:
            api_key = self.settings.openai_api_key
            if not api_key or api_key.startswith("sk-xxxx") or "YOUR_" in api_key:
                raise ApplicationError(
                    code=ErrorCode.CONFIGURATION_ERROR,
                    message="OPENAI_API_KEY not properly configured",
                    hint="Set OPENAI_API_KEY in the environment or .env file",
                )
            generator = GeneratorAgent(
                OpenAI(api_key=api_key),
                model=self.settings.openai_model,
                fast_model=self.settings.openai_fast_model,
                timeout=self.settings.generation_timeout_seconds,
                max_retries=self.settings.service_max_retries,
                retry_backoff=self.settings.service_retry_backoff_seconds,
            )
        self.generator = generator
        self.thresholds = thresholds or ContentThresholds(
            acceptable=self.settings.min_visible_text_chars,
            rich=self.settings.rich_visible_text_chars,
        )
        self.weights = weights
        self.max_pages = self.settings.max_pages
        self.max_regeneration_attempts = self.settings.max_regeneration_attempts

    def assess_page(self, filename: str, content: str, failure: str = "") -> PageAssessment:
        """
        Low-content and forbidden-construct checks deciding accept vs regenerate.

        Empty content (failed call or failed extraction) always needs regeneration,
        and its reported issue is the call failure or the extraction miss rather
        than the validator's first complaint about an empty document.
        """
        report = validate(content, check_completeness=True, thresholds=self.thresholds, weights=self.weights)
        empty = not content.strip()
        if empty and not failure:
            failure = "No usable markup found in model output"
        return PageAssessment(
            filename=filename,
            report=report,
            needs_regeneration=empty or needs_regeneration(report),
            failure=failure if empty else "",
        )

    async def run(
        self,
        prompt: str,
        site_name: Optional[str] = None,
        scope_id: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        session_id: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run the whole pipeline for one prompt.

        Args:
            prompt: Free-form site description
            site_name: Display name (defaults to settings.default_site_name)
            scope_id: Identifier embedded into form/analytics hooks (defaults to session id or site slug)
            progress_callback: Called with (step, detail) at each stage; errors in it are logged and ignored
            cancel_event: Set it to stop the run; no partial files are returned
            session_id: Correlation id for logs

        Returns:
            PipelineResult; never raises except for task cancellation
        """
        site_name = (site_name or "").strip() or self.settings.default_site_name
        scope_id = scope_id or session_id or "site"
        context = RequestContext(session_id=session_id, agent="Orchestrator", phase="detect")
        mode = OutputMode.MARKUP

        try:
            # Step 1: detect mode and pages
            self._emit_event(progress_callback, "detecting", "Analysing your prompt...")
            detection = detect_output_mode(prompt)
            mode = detection.mode
            pages, cap_warning = resolve_pages(detection.pages, self.max_pages)
            warnings: List[str] = []
            if cap_warning:
                warnings.append(cap_warning)
            if mode != OutputMode.MARKUP:
                warnings.append(
                    f"Detected a {mode.value} request ({detection.reason}); producing a static multi-page site"
                )
            request = GenerationRequest(root_prompt=prompt, site_name=site_name, pages=pages)
            self._emit_event(
                progress_callback,
                "detected",
                f"Detected: {mode.value} site with {len(pages)} pages ({detection.confidence} confidence)"
            )
            logger.info(f"{context.log_prefix()} Pages resolved | {[p.filename for p in pages]}")

            # Step 2: shared assets
            self._check_cancel(cancel_event)
            self._emit_event(progress_callback, "generating-styles", "Generating design system...")
            assets = await self._generate_shared_assets(request, context, warnings)

            # Step 3: first pass over every page
            runs = [_PageRun(page=page, lifecycle=PageLifecycle(page.slug)) for page in request.pages]
            for index, run in enumerate(runs):
                self._check_cancel(cancel_event)
                self._emit_event(
                    progress_callback,
                    f"generating-page-{index + 1}",
                    f"Generating {run.page.display_name} page ({index + 1}/{len(runs)})..."
                )
                content, run.failure = await self._generate_page(request, run.page, assets, context)
                run.artifact = PageArtifact(filename=run.page.filename, content=content, attempt=1)
                run.lifecycle.advance(PageState.GENERATED)

            # Step 4: low-content and forbidden-construct checks
            self._check_cancel(cancel_event)
            self._emit_event(progress_callback, "validating", "Checking all pages for content...")
            for run in runs:
                self._assess(run)

            # Step 5: bounded regeneration with accepted files as context
            failing = [run for run in runs if run.lifecycle.state == PageState.NEEDS_REGENERATION]
            if failing:
                self._emit_event(progress_callback, "fixing", f"Fixing {len(failing)} incomplete page(s)...")
            for run in failing:
                warnings.append(f"{run.page.filename}: Auto-regenerated -- {run.assessment.first_issue}")
                while run.lifecycle.state == PageState.NEEDS_REGENERATION:
                    self._check_cancel(cancel_event)
                    attempt = run.artifact.attempt + 1
                    self._emit_event(
                        progress_callback,
                        "regenerating",
                        f"Regenerating {run.page.filename} (attempt {attempt})..."
                    )
                    run.lifecycle.advance(PageState.REGENERATING)
                    accepted = self._accepted_files(runs, assets)
                    content, run.failure = await self._regenerate_page(request, run.page, accepted, attempt, context)
                    run.artifact = PageArtifact(filename=run.page.filename, content=content, attempt=attempt)
                    run.lifecycle.advance(PageState.GENERATED)
                    self._assess(run)

            fallbacks: List[str] = []
            for run in runs:
                if run.lifecycle.state == PageState.EXHAUSTED:
                    run.artifact = PageArtifact(
                        filename=run.page.filename,
                        content=build_fallback_page(run.page, site_name, assets.nav_fragment, assets.footer_fragment),
                        attempt=run.artifact.attempt,
                    )
                    run.lifecycle.advance(PageState.FALLBACK)
                    fallbacks.append(run.page.filename)
                    warnings.append(
                        f"{run.page.filename}: regeneration budget exhausted, using a placeholder page "
                        f"({'; '.join(run.issues_seen[-1:]) or 'generation failed'})"
                    )
                    logger.warning(f"{context.log_prefix()} ⚠ Fallback page used | file: {run.page.filename}")

            # Step 6: repair and inject, then completeness across the file set
            self._check_cancel(cancel_event)
            files: Dict[str, str] = {
                STYLESHEET_FILENAME: assets.stylesheet_text,
                SCRIPT_FILENAME: assets.script_text,
            }
            for run in runs:
                files[run.page.filename] = self._finalize_page(run.artifact.content, scope_id)

            expected = [run.page.filename for run in runs]
            site = validate_site(files, expected, self.thresholds, self.weights, exempt=fallbacks)
            errors = [
                f'Page "{missing}" was not generated; add it manually or regenerate'
                for missing in site.missing_pages
            ]
            errors.extend(site.critical_errors)

            # Step 7: quality score
            quality_score = compute_quality_score(site, self.weights)
            self._emit_event(
                progress_callback,
                "complete",
                f"Done -- {len(files)} files, quality {quality_score}/100"
            )
            logger.info(
                f"{context.log_prefix()} ✓ Pipeline complete | files: {len(files)} | "
                f"quality: {quality_score} | success: {site.passed} | fallbacks: {fallbacks} | "
                f"tokens: {context.usage.total_tokens} over {context.usage.calls} calls | "
                f"lifecycles: {{{', '.join(f'{r.page.slug}: {r.lifecycle.state.value}' for r in runs)}}}"
            )
            return PipelineResult(
                files=files,
                mode=mode,
                pages=expected,
                warnings=warnings,
                errors=errors,
                quality_score=quality_score,
                success=site.passed,
            )

        except PipelineCancelled:
            logger.info(f"{context.log_prefix()} Pipeline cancelled, discarding pages")
            self._emit_event(progress_callback, "cancelled", "Generation cancelled")
            return PipelineResult(files={}, mode=mode, errors=["Generation cancelled"], success=False)
        except asyncio.CancelledError:
            logger.info(f"{context.log_prefix()} Pipeline task cancelled, discarding pages")
            self._emit_event(progress_callback, "cancelled", "Generation cancelled")
            raise
        except Exception as e:
            enrich_error_context(e, context, {"site_name": site_name})
            return PipelineResult(files={}, mode=mode, errors=[f"Pipeline failed: {e}"], success=False)

    async def _generate_shared_assets(
        self, request: GenerationRequest, context: RequestContext, warnings: List[str]
    ) -> SharedAssets:
        with track_phase(context.child("Generator", phase="shared-assets")) as tracker:
            try:
                assets = await self.generator.generate_shared_assets(
                    request.site_name, request.root_prompt, request.pages
                )
                tracker.record_attempt()
                tracker.complete(success=True)
                return assets
            except Exception as e:
                tracker.record_attempt(error=str(e))
                tracker.complete(success=False)
                warnings.append(f"Shared assets could not be generated, using defaults ({e})")
                logger.warning(f"{context.log_prefix()} ⚠ Shared assets failed, using defaults | error: {e}")
                return default_assets(request.site_name, request.pages)

    async def _generate_page(
        self, request: GenerationRequest, page: PageSpec, assets: SharedAssets, context: RequestContext
    ) -> Tuple[str, str]:
        with track_phase(context.child("Generator", phase=f"page:{page.slug}")) as tracker:
            try:
                result = await self.generator.generate_page(
                    page, request.site_name, request.root_prompt, request.pages, assets
                )
            except Exception as e:
                tracker.record_attempt(error=str(e))
                tracker.complete(success=False)
                logger.warning(f"{context.log_prefix()} ⚠ Page generation failed | slug: {page.slug} | error: {e}")
                return "", f"Generation service failed: {e}"
            tracker.record_attempt(result.prompt_tokens, result.completion_tokens)
            markup = extract(result.text, repair=True).markup
            tracker.complete(success=bool(markup))
            return markup, ""

    async def _regenerate_page(
        self,
        request: GenerationRequest,
        page: PageSpec,
        accepted: Dict[str, str],
        attempt: int,
        context: RequestContext,
    ) -> Tuple[str, str]:
        with track_phase(context.child("Generator", phase=f"regen:{page.slug}", attempt=attempt)) as tracker:
            try:
                result = await self.generator.regenerate_page(
                    page, request.site_name, request.root_prompt, accepted, attempt
                )
            except Exception as e:
                tracker.record_attempt(error=str(e))
                tracker.complete(success=False)
                logger.warning(
                    f"{context.log_prefix()} ⚠ Regeneration failed | slug: {page.slug} | attempt: {attempt} | error: {e}"
                )
                return "", f"Generation service failed: {e}"
            tracker.record_attempt(result.prompt_tokens, result.completion_tokens)
            markup = extract(result.text, repair=True).markup
            tracker.complete(success=bool(markup))
            return markup, ""

    def _assess(self, run: _PageRun):
        """Validated -> Accepted | NeedsRegeneration | Exhausted"""
        run.lifecycle.advance(PageState.VALIDATED)
        run.assessment = self.assess_page(run.page.filename, run.artifact.content, run.failure)
        if not run.assessment.needs_regeneration:
            run.lifecycle.advance(PageState.ACCEPTED)
            return
        run.issues_seen.append(run.assessment.first_issue)
        regenerations_used = run.artifact.attempt - 1
        if regenerations_used < self.max_regeneration_attempts:
            run.lifecycle.advance(PageState.NEEDS_REGENERATION)
        else:
            run.lifecycle.advance(PageState.EXHAUSTED)

    def _accepted_files(self, runs: List[_PageRun], assets: SharedAssets) -> Dict[str, str]:
        files = {STYLESHEET_FILENAME: assets.stylesheet_text, SCRIPT_FILENAME: assets.script_text}
        for run in runs:
            if run.lifecycle.state == PageState.ACCEPTED:
                files[run.page.filename] = run.artifact.content
        return files

    def _finalize_page(self, content: str, scope_id: str) -> str:
        repaired = repair_document(content)
        injected = apply_policies(repaired['fixed_html'], scope_id)
        logger.debug(
            f"[Orchestrator] Page finalized | repairs: {len(repaired['fixes_applied'])} | "
            f"injections: {len(injected['changes'])}"
        )
        return injected['html']

    def _check_cancel(self, cancel_event: Optional[asyncio.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled()

    def _emit_event(self, callback: Optional[ProgressCallback], step: str, detail: str):
        """Emit progress via callback if provided"""
        if callback:
            try:
                callback(step, detail)
            except Exception as e:
                logger.warning(f"[Orchestrator] Progress callback error: {e}")


# Export for convenience
__all__ = ["PageOrchestrator", "PageAssessment"]
