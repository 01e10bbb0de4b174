"""Export pipeline: expand -> geometry -> tile -> normalize -> render."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from rich.progress import Progress

from .deck import Deck
from .docx_generator import write_sheets_docx
from .duplex import reorder_for_duplex
from .errors import CardPrinterError, ExportPreconditionError
from .expander import expand_cards
from .geometry import resolve_geometry
from .models import (
    Card,
    ExportJob,
    ExportResult,
    JobState,
    PrintSettings,
    SheetGeometry,
    SheetPlan,
    SideMode,
)
from .normalizer import ImageNormalizer
from .pdf_generator import write_sheets_pdf
from .tiler import plan_placements, rows_per_page


Renderer = Callable[..., int]

RENDERERS: Dict[str, Renderer] = {
    "pdf": write_sheets_pdf,
    "docx": write_sheets_docx,
}


def build_job(
    cards: Sequence[Card],
    settings: PrintSettings,
    back_src: Optional[str] = None,
) -> ExportJob:
    """
    Freeze cards and settings into an export job.

    Raises:
        ExportPreconditionError: If the card list is empty, or a back side is
            requested without a back image
    """
    if not cards:
        raise ExportPreconditionError("No cards to export - the card list is empty.")
    job = ExportJob(cards=tuple(cards), settings=settings, back_src=back_src or None)
    if job.needs_back and not job.back_src:
        raise ExportPreconditionError(
            f"Side mode {settings.side_mode.value!r} needs a back image, but none is set."
        )
    return job


def job_from_deck(deck: Deck) -> ExportJob:
    return build_job(deck.cards, deck.settings, deck.back_src)


def resolve_job_geometry(job: ExportJob) -> SheetGeometry:
    s = job.settings
    return resolve_geometry(
        page_size=s.page_size,
        orientation=s.orientation,
        margin_mm=s.margin_mm,
        gap_mm=s.gap_mm,
        bleed_mm=s.bleed_mm,
        card_width_mm=s.card_width_mm,
        card_height_mm=s.card_height_mm,
        auto_fit=s.auto_fit,
        cols=s.cols,
        rows=s.rows,
    )


class ExportPipeline:
    """
    Runs one export job through its stages.

    States move IDLE -> EXPANDING -> RESOLVING_GEOMETRY -> TILING ->
    NORMALIZING_IMAGES -> RENDERING -> DONE. Any error moves the pipeline to
    FAILED and is re-raised. Per-image failures are not errors; they are
    counted in the result.
    """

    def __init__(
        self,
        normalizer: Optional[ImageNormalizer] = None,
        progress: Optional[Progress] = None,
    ) -> None:
        self.normalizer = normalizer or ImageNormalizer()
        self.progress = progress
        self.states: List[JobState] = [JobState.IDLE]

    @property
    def state(self) -> JobState:
        return self.states[-1]

    def _enter(self, state: JobState) -> None:
        self.states.append(state)

    def plan(self, job: ExportJob) -> Tuple[SheetGeometry, Optional[SheetPlan], Optional[SheetPlan]]:
        """Run the synchronous stages and return geometry plus front/back plans."""
        self.states = [JobState.IDLE]
        self._enter(JobState.EXPANDING)
        slots = expand_cards(job.cards)

        self._enter(JobState.RESOLVING_GEOMETRY)
        geometry = resolve_job_geometry(job)

        self._enter(JobState.TILING)
        crop = job.settings.crop_marks
        front = None
        back = None
        if job.settings.side_mode in (SideMode.FRONT_ONLY, SideMode.FRONT_BACK):
            front = plan_placements(slots, geometry, crop, side="front")
        if job.needs_back:
            back_sequence = reorder_for_duplex(
                slots, job.flip_mode, cols=geometry.cols, rows=rows_per_page(geometry)
            )
            back = plan_placements(back_sequence, geometry, crop, side="back", image_key=job.back_src)
        return geometry, front, back

    def run(self, job: ExportJob, output_path: Path, fmt: str = "pdf") -> ExportResult:
        """
        Execute the job and write the output document.

        Args:
            job: Export job built with `build_job`
            output_path: Path to the output file
            fmt: Output format, "pdf" or "docx"

        Raises:
            ExportPreconditionError: If the format is unknown
            GeometryError: If card boxes cannot be placed on the page
            CardPrinterError: If nothing printable remains after normalization
        """
        renderer = RENDERERS.get(fmt)
        if renderer is None:
            raise ExportPreconditionError(f"Unknown output format: {fmt!r}")

        try:
            geometry, front, back = self.plan(job)
            result = ExportResult(job=job, geometry=geometry, front=front, back=back)

            self._enter(JobState.NORMALIZING_IMAGES)
            sources: List[str] = []
            for plan in (front, back):
                if plan is not None:
                    sources.extend(plan.manifest)
            result.images = self.normalizer.normalize_all(sources, progress=self.progress)

            if back is not None and not result.images[job.back_src].ok:
                if front is None:
                    raise CardPrinterError(
                        f"The back image could not be loaded: {result.images[job.back_src].error}"
                    )
                result.back = None

            self._enter(JobState.RENDERING)
            plans = [plan for plan in (result.front, result.back) if plan is not None]
            output_path.parent.mkdir(parents=True, exist_ok=True)
            renderer(plans, result.images, output_path, progress_callback=self._page_callback(fmt))
            result.output_path = str(output_path)
        except Exception:
            self._enter(JobState.FAILED)
            raise

        self._enter(JobState.DONE)
        result.states = list(self.states)
        return result

    def _page_callback(self, fmt: str) -> Optional[Callable[[int, int], None]]:
        if self.progress is None:
            return None
        progress = self.progress
        task_id = progress.add_task(f"[green]Writing {fmt.upper()} pages...", total=None)

        def callback(page_num: int, total_pages: int) -> None:
            progress.update(
                task_id,
                completed=page_num,
                total=total_pages,
                description=f"[green]Writing page [bold]{page_num}/{total_pages}[/bold]...",
            )

        return callback
