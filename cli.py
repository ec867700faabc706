import argparse
import asyncio
import json
import uuid

from rich.console import Console
from rich.table import Table

from headlines.config import get_settings, save_config
from headlines.logging_config import configure_logging
from headlines.pipeline import DigestPipeline, EmptyMessageError

console = Console()


def render_digest(result) -> Table:
    table = Table(title=f"Digest ({len(result.articles)} articles)")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Region")
    table.add_column("Topics")
    table.add_column("Summary")
    for article in result.articles:
        table.add_row(
            str(article.id),
            article.title,
            article.region,
            ", ".join(article.topic_tags),
            article.body,
        )
    return table


async def ask(args) -> int:
    settings = get_settings()
    pipeline = DigestPipeline.from_settings(settings)
    session_id = args.session or str(uuid.uuid4())

    try:
        result = await pipeline.run(session_id, args.message)
    except EmptyMessageError as e:
        console.print(f"[red]Error: {e}[/]")
        return 2
    finally:
        await pipeline.close()

    if args.json:
        console.print_json(json.dumps(result.to_dict()))
        return 0

    console.print(render_digest(result))
    console.print(
        f"[dim]session={session_id} new={result.new_articles_seen} "
        f"total={result.total_articles_processed} "
        f"preferences_updated={result.preferences_updated}[/]"
    )
    if settings.store_dir is None:
        console.print(
            "[yellow]No store_dir configured; session state is not kept between runs.[/]"
        )
    return 0


def serve(args) -> int:
    import uvicorn

    uvicorn.run("headlines.main:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Personalized news digest")
    parser.add_argument("--log-level", default=None, help="Override log level")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8787)

    p_ask = sub.add_parser("ask", help="Build one digest and print it")
    p_ask.add_argument("message")
    p_ask.add_argument("--session", default=None, help="Session id to reuse")
    p_ask.add_argument("--json", action="store_true", help="Print raw JSON")

    p_config = sub.add_parser("config", help="Save a setting to the config file")
    p_config.add_argument("key")
    p_config.add_argument("value")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or get_settings().log_level)

    if args.command == "serve":
        return serve(args)
    if args.command == "config":
        save_config(args.key, args.value)
        console.print(f"[green]Saved {args.key}[/]")
        return 0
    return asyncio.run(ask(args))


if __name__ == "__main__":
    raise SystemExit(main())
