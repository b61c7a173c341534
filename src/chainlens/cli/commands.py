from __future__ import annotations
import argparse
import asyncio
import json
import sys
from contextlib import asynccontextmanager

import asyncpg

from ..config import Settings, configure_logging, load_settings
from ..db.ddl import DDL_PATH, init_schema
from ..knowledge_base.models import IndexOptions, RefreshInterval, SourceKind


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chainlens",
        description="ChainLens - documentation knowledge base for AI coding assistants"
    )
    parser.add_argument("--config", help="Path to YAML config (default: CHAINLENS_CONFIG or environment)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    # Database commands
    db = sub.add_parser("db", help="Database management commands")
    dbsub = db.add_subparsers(dest="dbcmd", required=True)
    dbsub.add_parser("init", help="Initialize database schema")
    dbsub.add_parser("ping", help="Test database connection")

    # Section commands
    section = sub.add_parser("section", help="Section management commands")
    sectionsub = section.add_subparsers(dest="sectioncmd", required=True)
    section_add = sectionsub.add_parser("add", help="Create a section")
    section_add.add_argument("--name", required=True, help="Section name")

    subsection = sub.add_parser("subsection", help="Subsection management commands")
    subsectionsub = subsection.add_subparsers(dest="subsectioncmd", required=True)
    subsection_add = subsectionsub.add_parser("add", help="Create a subsection")
    subsection_add.add_argument("--section-id", required=True, help="Parent section id")
    subsection_add.add_argument("--name", required=True, help="Subsection name")

    # Source commands
    source = sub.add_parser("source", help="Source management commands")
    sourcesub = source.add_subparsers(dest="sourcecmd", required=True)
    source_add = sourcesub.add_parser("add", help="Register a documentation source")
    source_add.add_argument("--name", required=True, help="Display name")
    source_add.add_argument("--kind", required=True, choices=[k.value for k in SourceKind])
    source_add.add_argument("--url", required=True, help="Site, repository or PDF URL")
    source_add.add_argument("--version", help="Version label, e.g. v3")
    source_add.add_argument("--depth", type=int, default=1, help="Web crawl link depth (default 1)")
    source_add.add_argument("--branch", default="main", help="Repository branch (default main)")
    source_add.add_argument("--include", default="", help="Comma-separated path substrings to include")
    source_add.add_argument("--exclude", default="", help="Comma-separated path substrings to exclude")
    source_add.add_argument("--refresh", default="none", choices=[r.value for r in RefreshInterval])
    source_add.add_argument("--section-id", help="Attach directly to a section")
    source_add.add_argument("--subsection-id", help="Attach to a subsection")
    source_add.add_argument("--no-readme", action="store_true", help="Skip the root README")
    source_add.add_argument("--no-docs", action="store_true", help="Skip docs/ markdown")
    source_add.add_argument("--no-sol", action="store_true", help="Skip Solidity files")
    source_add.add_argument("--no-md", action="store_true", help="Skip other markdown files")
    source_add.add_argument("--no-mdx", action="store_true", help="Skip .mdx files")
    source_add.add_argument("--index-tests", action="store_true", help="Include test directories")
    sourcesub.add_parser("ls", help="List sources")

    # Indexing commands
    idx = sub.add_parser("index", help="Index one source now")
    idx.add_argument("--source-id", required=True, help="Source id")
    sub.add_parser("refresh", help="Refresh every source that is due")

    # Search
    search = sub.add_parser("search", help="Search an endpoint")
    search.add_argument("--endpoint", required=True, help="Endpoint token (src-, sub- or sec-)")
    search.add_argument("--query", required=True, help="Search query")
    search.add_argument("--limit", type=int, help="Max results (default 8, max 20)")
    search.add_argument("--version", help="Exact version filter")

    # Servers
    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    mcp = sub.add_parser("mcp", help="Serve one endpoint over stdio")
    mcp.add_argument("--endpoint", required=True, help="Endpoint token")

    sub.add_parser("daemon", help="Run the periodic refresh daemon")

    return parser


def run(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
        configure_logging(settings.logging)

        if args.cmd == "db":
            if args.dbcmd == "init":
                asyncio.run(db_init(settings))
            elif args.dbcmd == "ping":
                asyncio.run(db_ping(settings))
        elif args.cmd == "section":
            asyncio.run(section_add(settings, args.name))
        elif args.cmd == "subsection":
            asyncio.run(subsection_add(settings, args.section_id, args.name))
        elif args.cmd == "source":
            if args.sourcecmd == "add":
                asyncio.run(source_add(settings, args))
            elif args.sourcecmd == "ls":
                asyncio.run(source_ls(settings))
        elif args.cmd == "index":
            asyncio.run(index_source(settings, args.source_id))
        elif args.cmd == "refresh":
            asyncio.run(refresh_sources(settings))
        elif args.cmd == "search":
            asyncio.run(search(settings, args.endpoint, args.query, args.limit, args.version))
        elif args.cmd == "serve":
            import uvicorn
            uvicorn.run("chainlens.web.app:app", host=args.host, port=args.port)
        elif args.cmd == "mcp":
            asyncio.run(serve_stdio(settings, args.endpoint))
        elif args.cmd == "daemon":
            from ..daemon.main import main
            main(config_path=args.config)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


@asynccontextmanager
async def open_services(settings: Settings):
    from ..services import Services

    services = await Services.create(settings)
    try:
        yield services
    finally:
        await services.close()


async def db_init(settings: Settings) -> None:
    """Initialize database schema from DDL file."""
    if not DDL_PATH.exists():
        raise FileNotFoundError(f"DDL file not found at {DDL_PATH}")

    try:
        conn = await asyncpg.connect(dsn=settings.database.database_url)
    except asyncpg.InvalidCatalogNameError:
        raise RuntimeError(
            "Database does not exist. Please create it first:\n"
            "  createdb chainlens\n"
            "Or check your DATABASE_URL in .env"
        )

    try:
        await init_schema(conn)
        print("✓ Database schema initialized successfully")
    except asyncpg.PostgresError as e:
        raise RuntimeError(f"Failed to execute DDL: {e}")
    finally:
        await conn.close()


async def db_ping(settings: Settings) -> None:
    """Test database connection and check pgvector extension."""
    conn = await asyncpg.connect(dsn=settings.database.database_url)
    try:
        version = await conn.fetchval("SELECT version()")
        print(f"✓ Connected: {version}")

        ext = await conn.fetchval("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
        if ext:
            print(f"✓ pgvector extension installed (version {ext})")
        else:
            print("✗ pgvector extension not installed (run: chainlens db init)")
    finally:
        await conn.close()


async def section_add(settings: Settings, name: str) -> None:
    async with open_services(settings) as services:
        section = await services.store.create_section(name)
        print(f"✓ Section {section['name']} ({section['id']}) at {section['endpoint']}")


async def subsection_add(settings: Settings, section_id: str, name: str) -> None:
    async with open_services(settings) as services:
        subsection = await services.store.create_subsection(section_id, name)
        print(f"✓ Subsection {subsection['name']} ({subsection['id']}) at {subsection['endpoint']}")


async def source_add(settings: Settings, args: argparse.Namespace) -> None:
    options = IndexOptions(
        index_readme=not args.no_readme,
        index_docs=not args.no_docs,
        index_sol=not args.no_sol,
        index_md=not args.no_md,
        index_mdx=not args.no_mdx,
        index_tests=args.index_tests,
    )
    async with open_services(settings) as services:
        source = await services.store.create_source(
            args.name,
            SourceKind(args.kind),
            args.url,
            version=args.version,
            crawl_depth=args.depth,
            branch=args.branch,
            include_patterns=[p.strip() for p in args.include.split(",") if p.strip()],
            exclude_patterns=[p.strip() for p in args.exclude.split(",") if p.strip()],
            index_options=options,
            refresh_interval=RefreshInterval(args.refresh),
            subsection_id=args.subsection_id,
            section_id=args.section_id,
        )
        print(f"✓ Source {source.name} ({source.id}) at {source.endpoint}")


async def source_ls(settings: Settings) -> None:
    async with open_services(settings) as services:
        sources = await services.store.list_sources()

    if not sources:
        print("No sources registered")
        return

    for s in sources:
        indexed = s.last_indexed_at.isoformat() if s.last_indexed_at else "never"
        print(f"{s.id}  {s.status.value:<10} {s.kind.value:<10} {s.chunk_count:>6} chunks  "
              f"{s.endpoint}  {s.name}  (indexed: {indexed})")
        if s.error_log:
            print(f"    error: {s.error_log}")


async def index_source(settings: Settings, source_id: str) -> None:
    async with open_services(settings) as services:
        result = await services.orchestrator.index_source(source_id)
    print(f"✓ {result.message} ({result.status.value})")


async def refresh_sources(settings: Settings) -> None:
    async with open_services(settings) as services:
        refreshed = await services.orchestrator.refresh_due_sources()
    print(f"✓ Refreshed {len(refreshed)} sources")


async def search(settings: Settings, endpoint: str, query: str, limit: int | None, version: str | None) -> None:
    from ..mcp.endpoints import resolve_endpoint_sources
    from ..retrieval.hybrid_search import hybrid_search

    async with open_services(settings) as services:
        source_ids = await resolve_endpoint_sources(endpoint, services.store)
        if not source_ids:
            print(f"No ready sources for {endpoint}", file=sys.stderr)
            return
        response = await hybrid_search(
            query, source_ids, services.store, services.embedder,
            limit=limit, version=version, settings=settings.search,
        )

    print(json.dumps(response.model_dump(by_alias=True, mode="json"), indent=2))


async def serve_stdio(settings: Settings, endpoint: str) -> None:
    from ..mcp.server import run_stdio_server

    async with open_services(settings) as services:
        await run_stdio_server(endpoint, services.mcp)
