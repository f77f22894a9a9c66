import argparse
import asyncio
import json
import logging
from pathlib import Path

from .config import DB_PATH, DEFAULT_REGION, TMDB_API_KEY
from .database import SqliteKeyValueStore
from .engine import RecommendationEngine
from .genres import genre_name, parse_genre
from .models import FilterOptions, Recommendation, WatchlistItem, MEDIA_TYPES
from .tmdb import CatalogClient, CATALOG_CACHE_PREFIX

logger = logging.getLogger(__name__)


def _open_store(args: argparse.Namespace) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(Path(args.db) if getattr(args, 'db', None) else DB_PATH)


def _build_engine(store: SqliteKeyValueStore, catalog: CatalogClient | None = None) -> RecommendationEngine:
    return RecommendationEngine.from_store(store, catalog or CatalogClient(cache_store=store))


def _filter_options(args: argparse.Namespace) -> FilterOptions:
    genre_ids = []
    for value in getattr(args, 'genre', None) or []:
        genre_id = parse_genre(value)
        if genre_id is None:
            raise ValueError(f"Unknown genre: '{value}'")
        genre_ids.append(genre_id)

    return FilterOptions(
        fetch_movies=not getattr(args, 'tv_only', False),
        fetch_tv=not getattr(args, 'movies_only', False),
        filter_genre_ids=genre_ids,
    )


def _output_recommendations(recs: list[Recommendation], args: argparse.Namespace, heading: str) -> None:
    """Format and log recommendations in the requested format."""
    output_format = getattr(args, 'format', 'text')

    if output_format == 'json':
        logger.info(json.dumps([r.to_dict() for r in recs], indent=2))
        return

    if not recs:
        logger.info("No recommendations available. Add titles to your watchlist or import a taste profile.")
        return

    logger.info(f"\n{heading} ({len(recs)}):")
    for i, r in enumerate(recs, 1):
        meta = r.metadata
        year = (meta.get('release_date') or '')[:4] or '?'
        genres = ', '.join(filter(None, (genre_name(g) for g in meta.get('genre_ids', [])[:3])))
        logger.info(f"{i}. {meta.get('title', 'Unknown')} ({year}) [{r.type}] - Score: {r.score:.1f}")
        logger.info(f"   Why: {r.reason}" + (f"  |  {genres}" if genres else ""))


async def _run_generation(args: argparse.Namespace, hidden_gems: bool) -> list[Recommendation]:
    store = _open_store(args)
    try:
        async with CatalogClient(cache_store=store) as catalog:
            engine = _build_engine(store, catalog)
            filters = _filter_options(args)
            if hidden_gems:
                return await engine.generate_hidden_gems(args.platform, args.region, filters)
            return await engine.generate_recommendations(args.platform, args.region, filters)
    finally:
        store.close()


def cmd_recommend(args: argparse.Namespace) -> None:
    """Generate personalized recommendations."""
    if args.movies_only and args.tv_only:
        logger.error("--movies-only and --tv-only are mutually exclusive")
        return
    if not TMDB_API_KEY:
        logger.warning("TMDB_API_KEY is not set; catalog requests will likely fail")
    try:
        recs = asyncio.run(_run_generation(args, hidden_gems=False))
    except ValueError as e:
        logger.error(str(e))
        return
    _output_recommendations(recs, args, "Recommended for you")


def cmd_gems(args: argparse.Namespace) -> None:
    """Generate hidden gems."""
    if args.movies_only and args.tv_only:
        logger.error("--movies-only and --tv-only are mutually exclusive")
        return
    if not TMDB_API_KEY:
        logger.warning("TMDB_API_KEY is not set; catalog requests will likely fail")
    try:
        recs = asyncio.run(_run_generation(args, hidden_gems=True))
    except ValueError as e:
        logger.error(str(e))
        return
    _output_recommendations(recs, args, "Hidden gems")


def cmd_dismiss(args: argparse.Namespace) -> None:
    """Hide a title from recommendations for 30 days."""
    store = _open_store(args)
    try:
        _build_engine(store).dismiss(args.id, args.type)
        logger.info(f"Dismissed {args.type} {args.id}")
    finally:
        store.close()


def cmd_import_watchlist(args: argparse.Namespace) -> None:
    """Replace the watchlist from a JSON file (a list of items or {"items": [...]})."""
    with open(args.file, 'r') as f:
        data = json.load(f)

    rows = data.get('items', []) if isinstance(data, dict) else data
    if not isinstance(rows, list):
        logger.error(f"Expected a list of watchlist items in {args.file}")
        return

    items = []
    for row in rows:
        try:
            items.append(WatchlistItem.from_dict(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping invalid watchlist entry {row!r}: {e}")

    store = _open_store(args)
    try:
        _build_engine(store).watchlist.replace_all(items)
    finally:
        store.close()
    logger.info(f"Imported {len(items)} watchlist items ({len(rows) - len(items)} skipped)")


def cmd_import_profile(args: argparse.Namespace) -> None:
    """Store a taste profile from a JSON file with `vector` and optional `confidence`."""
    with open(args.file, 'r') as f:
        data = json.load(f)

    if not isinstance(data, dict) or 'vector' not in data:
        logger.error(f"Expected an object with a 'vector' key in {args.file}")
        return

    store = _open_store(args)
    try:
        engine = _build_engine(store)
        try:
            engine.profiles.save_taste_profile(data['vector'], data.get('confidence'))
        except ValueError as e:
            logger.error(f"Invalid taste profile: {e}")
            return
    finally:
        store.close()
    logger.info("Imported taste profile")


def cmd_clear_cache(args: argparse.Namespace) -> None:
    """Delete cached recommendations, hidden gems and catalog responses."""
    store = _open_store(args)
    try:
        engine = _build_engine(store)
        engine.recommendation_cache.clear()
        engine.hidden_gems_cache.clear()
        removed = 0
        if not args.keep_catalog:
            for key in store.keys(CATALOG_CACHE_PREFIX):
                store.delete(key)
                removed += 1
    finally:
        store.close()
    logger.info(f"Cleared result caches and {removed} catalog responses")


def _add_generation_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--platform", type=int, action="append", default=[],
                        help="Streaming provider id (repeatable)")
    parser.add_argument("--region", default=DEFAULT_REGION, help=f"Watch region (default: {DEFAULT_REGION})")
    parser.add_argument("--genre", action="append", default=[],
                        help="Only include this genre, by id or name (repeatable, disables caching)")
    parser.add_argument("--movies-only", action="store_true", help="Only recommend movies")
    parser.add_argument("--tv-only", action="store_true", help="Only recommend TV shows")
    parser.add_argument("--format", choices=['text', 'json'], default='text', help="Output format")


def main():
    parser = argparse.ArgumentParser(description="Videx Recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--db", help=f"Key-value store path (default: {DB_PATH})")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rec_parser = subparsers.add_parser("recommend", help="Generate recommendations")
    _add_generation_args(rec_parser)
    rec_parser.set_defaults(func=cmd_recommend)

    gems_parser = subparsers.add_parser("gems", help="Find high-rated, low-popularity titles")
    _add_generation_args(gems_parser)
    gems_parser.set_defaults(func=cmd_gems)

    dismiss_parser = subparsers.add_parser("dismiss", help="Hide a title from recommendations")
    dismiss_parser.add_argument("type", choices=list(MEDIA_TYPES), help="Media type")
    dismiss_parser.add_argument("id", type=int, help="Catalog id")
    dismiss_parser.set_defaults(func=cmd_dismiss)

    watchlist_parser = subparsers.add_parser("import-watchlist", help="Import watchlist from JSON")
    watchlist_parser.add_argument("file", help="JSON file to import")
    watchlist_parser.set_defaults(func=cmd_import_watchlist)

    profile_parser = subparsers.add_parser("import-profile", help="Import taste profile from JSON")
    profile_parser.add_argument("file", help="JSON file to import")
    profile_parser.set_defaults(func=cmd_import_profile)

    clear_parser = subparsers.add_parser("clear-cache", help="Clear cached results")
    clear_parser.add_argument("--keep-catalog", action="store_true", help="Keep cached catalog responses")
    clear_parser.set_defaults(func=cmd_clear_cache)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()
