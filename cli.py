#!/usr/bin/env python3
"""
Transcript Pipeline CLI

Resolve transcripts for YouTube videos from the command line and maintain
the transcript store.
"""

import asyncio
import json
import sys
from typing import Optional

import click

from config.settings import get_settings
from core.database import DatabaseManager
from core.errors import TranscriptPipelineError
from core.logging_setup import configure_logging
from core.transcript_store import TranscriptStore
from workers.orchestrator import build_orchestrator

__version__ = "1.0.0"


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version and exit')
@click.option('--log-level', default=None, help='Override LOG_LEVEL (DEBUG, INFO, ...)')
@click.pass_context
def cli(ctx, version, log_level):
    """Transcript Pipeline - captions first, speech recognition as fallback."""
    if version:
        click.echo(f"yt-transcript-pipeline {__version__}")
        ctx.exit()

    configure_logging(log_level)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


async def _fetch(video_id: str, language: Optional[str]):
    orchestrator = build_orchestrator(get_settings())
    try:
        return await orchestrator.fetch(video_id, language=language)
    finally:
        await orchestrator.close()


@cli.command()
@click.argument('video_id')
@click.option('--language', '-l', default=None, help='Preferred caption/transcription language')
@click.option('--json', 'as_json', is_flag=True, help='Print segments as JSON')
def fetch(video_id, language, as_json):
    """Resolve the transcript for VIDEO_ID."""
    try:
        transcript = asyncio.run(_fetch(video_id, language))
    except TranscriptPipelineError as e:
        if as_json:
            click.echo(json.dumps(e.to_dict(), indent=2), err=True)
        else:
            click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    if transcript is None:
        click.echo(f"Transcript unavailable for {video_id}", err=True)
        sys.exit(2)

    if as_json:
        click.echo(json.dumps({
            "video_id": video_id,
            "source": transcript.source.value,
            "language": transcript.language,
            "segments": transcript.to_records(),
        }, indent=2, ensure_ascii=False))
        return

    for segment in transcript:
        seconds = segment.offset_ms / 1000
        click.echo(f"[{int(seconds // 60):02d}:{seconds % 60:05.2f}] {segment.text}")


async def _purge_expired() -> int:
    db_manager = DatabaseManager(get_settings().database_url)
    try:
        store = TranscriptStore(db_manager, retention_days=get_settings().transcript_retention_days)
        return await store.purge_expired()
    finally:
        await db_manager.close()


@cli.command('purge-expired')
def purge_expired():
    """Delete transcripts past their retention window."""
    removed = asyncio.run(_purge_expired())
    click.echo(f"Purged {removed} expired transcript(s)")


async def _init_db() -> None:
    db_manager = DatabaseManager(get_settings().database_url)
    try:
        await db_manager.initialize()
    finally:
        await db_manager.close()


@cli.command('init-db')
def init_db():
    """Create the transcript tables."""
    asyncio.run(_init_db())
    click.echo(f"✅ Database ready: {get_settings().database_url}")


if __name__ == '__main__':
    cli()
