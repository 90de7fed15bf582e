#!/usr/bin/env python3
"""Command line interface for Site Auditor using Typer.

Runs a full audit from the terminal, printing progress frames as they
arrive, and serves the REST API.
"""

import asyncio
import json
from enum import Enum
from pathlib import Path
from typing import Annotated, List, Optional

import typer

from .. import __version__
from ..audit.models.capture import AuditInput, InputKind, InputRole
from ..audit.models.report import AuditMode
from ..audit.pipeline.coordinator import AuditPipeline
from ..audit.pipeline.streaming import FrameStream


class ExitCode(Enum):
    """Process exit codes."""
    SUCCESS = 0
    AUDIT_FAILED = 1
    CONFIG_ERROR = 2


app = typer.Typer(
    name="site-auditor",
    help="Site Auditor - AI website audits from live pages or screenshots",
    add_completion=False,
)


@app.callback()
def main():
    """
    Site Auditor - AI website audits from live pages or screenshots.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"Site Auditor CLI v{__version__}")


def build_inputs(urls: List[str], uploads: List[Path], competitor: bool) -> List[AuditInput]:
    """Turn command line arguments into audit inputs, URLs first.

    Raises:
        ValueError: If an input is invalid or competitor mode lacks two inputs
    """
    inputs = [AuditInput(kind=InputKind.URL, url=url) for url in urls]
    for path in uploads:
        inputs.append(AuditInput(kind=InputKind.UPLOAD, file_bytes=path.read_bytes()))

    if competitor:
        if len(inputs) != 2:
            raise ValueError("Competitor audits take exactly two inputs: primary and competitor")
        inputs[0].role = InputRole.PRIMARY
        inputs[1].role = InputRole.COMPETITOR
    return inputs


async def _run(inputs: List[AuditInput], mode: AuditMode, as_json: bool):
    pipeline = AuditPipeline()
    stream = FrameStream()
    task = asyncio.create_task(pipeline.run(inputs, mode=mode, stream=stream))

    async for frame in stream.frames():
        if as_json:
            typer.echo(json.dumps(frame.model_dump(exclude_none=True)))
        elif frame.type == "status":
            typer.echo(f"  {frame.message}")
        elif frame.type == "data":
            typer.echo(f"✓ {frame.key} result received")
        elif frame.type == "error":
            typer.echo(f"❌ {frame.message}", err=True)

    return await task


@app.command()
def audit(
    urls: Annotated[
        Optional[List[str]],
        typer.Argument(help="URLs to audit; the first one is the primary page")
    ] = None,

    upload: Annotated[
        Optional[List[Path]],
        typer.Option("--upload", "-u", help="Screenshot file to audit instead of a live page")
    ] = None,

    competitor: Annotated[
        bool,
        typer.Option("--competitor", help="Compare the first input against the second")
    ] = False,

    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Write the final report JSON to this file")
    ] = None,

    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print raw NDJSON frames")
    ] = False,
):
    """Run a complete audit and print its progress."""
    uploads = upload or []
    for path in uploads:
        if not path.is_file():
            typer.echo(f"❌ Upload not found: {path}", err=True)
            raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    try:
        inputs = build_inputs(urls or [], uploads, competitor)
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if not inputs:
        typer.echo("❌ No inputs specified. Provide URLs as arguments or use --upload", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    mode = AuditMode.COMPETITOR if competitor else AuditMode.STANDARD
    context = asyncio.run(_run(inputs, mode, as_json))

    if context.audit_id is None:
        raise typer.Exit(code=ExitCode.AUDIT_FAILED.value)

    if out:
        out.write_text(json.dumps(context.report.to_dict(), indent=2))
        typer.echo(f"Report written to {out}")
    if not as_json:
        typer.echo(f"✓ Audit {context.audit_id} saved")


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "0.0.0.0",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes")] = False,
):
    """Serve the REST API with uvicorn."""
    import uvicorn

    uvicorn.run("site_auditor.api.main:app", host=host, port=port, reload=reload, log_level="info")


if __name__ == "__main__":
    app()
