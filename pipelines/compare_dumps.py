"""
Batch comparison of DOM dumps.

For every ``*.dom`` file in the base directory the file of the same name is
looked up in the target directory and in each verification directory. The
base and target dumps are checked for equality first; when they differ the
residual differences are computed and, if any survive, written to the output
directory under the same file name.

A failure on one file is logged and counted; the batch always runs to the end.
"""

import asyncio
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from tamperwatch.dom import DOM_DUMP_SUFFIX, load_document
from tamperwatch.errors import MissingCounterpartError, TamperwatchError
from tamperwatch.mode import DEFAULT_MODE, ComparisonMode
from tamperwatch.reconcile import reconcile_documents
from tamperwatch.report import dump_differences, write_status

EQUAL = "equal"
CLEAN = "clean"
FLAGGED = "flagged"


@dataclass
class BatchSummary:
    total: int = 0
    equal: int = 0      # identical under the comparison mode
    clean: int = 0      # differed, but nothing survived filtering
    flagged: int = 0    # residual differences written out
    missing: int = 0    # no target counterpart
    errors: int = 0     # load or write failures


def base_dumps(base_dir: Path) -> List[str]:
    return sorted(p.name for p in base_dir.iterdir() if p.is_file() and p.name.endswith(DOM_DUMP_SUFFIX))


def compare_one(
    filename: str,
    base_dir: Path,
    target_dir: Path,
    out_dir: Path,
    verification_dirs: Sequence[Path],
    mode: ComparisonMode,
    log,
) -> str:
    """
    Compare one dump. Returns EQUAL, CLEAN or FLAGGED.

    Raises MissingCounterpartError when the target dump does not exist;
    LoadError / SinkError propagate.
    """
    base = base_dir / filename
    target = target_dir / filename
    if not target.exists():
        raise MissingCounterpartError(filename, target_dir)

    verifications = []
    for directory in verification_dirs:
        candidate = directory / filename
        if candidate.exists():
            verifications.append(load_document(candidate))
        else:
            log.debug("no verification dump", extra={"dump": filename, "step": "verify"})

    result = reconcile_documents(load_document(base), verifications, load_document(target), mode)
    if result.equal:
        return EQUAL
    if not result.residual:
        return CLEAN

    dump_differences(result.residual, out_dir / filename)
    log.info(
        "residual differences",
        extra={
            "dump": filename,
            "residual": len(result.residual),
            "whitelist": result.whitelist_size,
            "verifications": len(verifications),
        },
    )
    return FLAGGED


async def run(
    base_dir: Path,
    target_dir: Path,
    out_dir: Path,
    verification_dirs: Sequence[Path],
    log,
    mode: ComparisonMode = DEFAULT_MODE,
    workers: int = 4,
    health_path: Optional[Path] = None,
) -> BatchSummary:
    """
    Compare every base dump against its target counterpart.

    Comparisons run in worker threads, at most ``workers`` at a time. Each
    one loads its own documents, so nothing is shared between them.
    """
    summary = BatchSummary()
    out_dir.mkdir(parents=True, exist_ok=True)
    gate = asyncio.Semaphore(max(1, workers))

    async def handle(filename: str):
        async with gate:
            try:
                outcome = await asyncio.to_thread(
                    compare_one,
                    filename,
                    base_dir,
                    target_dir,
                    out_dir,
                    verification_dirs,
                    mode,
                    log,
                )
            except MissingCounterpartError as e:
                log.warning(str(e), extra={"dump": filename, "error_code": "MISSING_COUNTERPART"})
                summary.missing += 1
                return
            except TamperwatchError as e:
                log.error(
                    f"comparison failed: {e}",
                    extra={"dump": filename, "error_code": type(e).__name__},
                )
                summary.errors += 1
                return
            except Exception as e:
                log.error(
                    f"comparison crashed: {e!r}",
                    extra={"dump": filename, "error_code": type(e).__name__},
                    exc_info=True,
                )
                summary.errors += 1
                return

        if outcome == EQUAL:
            summary.equal += 1
        elif outcome == CLEAN:
            summary.clean += 1
        else:
            summary.flagged += 1

    names = base_dumps(base_dir)
    summary.total = len(names)
    await asyncio.gather(*(handle(name) for name in names))

    if health_path is not None:
        write_status(health_path, command="compare", **asdict(summary))

    log.info("compare complete", extra={"step": "done", **asdict(summary)})
    return summary
