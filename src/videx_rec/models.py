import logging
from dataclasses import dataclass, field, asdict
from typing import Any

logger = logging.getLogger(__name__)

MEDIA_TYPES = ('movie', 'tv')
WATCH_STATUSES = ('want_to_watch', 'watched')
SOURCES = ('genre', 'popular', 'similar', 'hidden_gem')


def content_key(media_type: str, item_id: int) -> str:
    """Stable string identity used by dismissals and watchlist lookups."""
    return f"{media_type}-{item_id}"


@dataclass
class WatchlistItem:
    id: int
    type: str
    status: str = 'want_to_watch'
    rating: int = 0  # -1 disliked, 0 neutral, 1 liked
    genre_ids: list[int] = field(default_factory=list)
    added_at: float = 0.0
    title: str = ''

    @property
    def key(self) -> str:
        return content_key(self.type, self.id)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'WatchlistItem':
        """Build from stored JSON; raises ValueError on unusable rows."""
        media_type = data.get('type') or data.get('media_type')
        if media_type not in MEDIA_TYPES:
            raise ValueError(f"Unknown media type: {media_type!r}")
        status = data.get('status', 'want_to_watch')
        if status not in WATCH_STATUSES:
            raise ValueError(f"Unknown watchlist status: {status!r}")
        rating = data.get('rating') or 0
        if rating not in (-1, 0, 1):
            raise ValueError(f"Rating must be -1, 0 or 1, got {rating!r}")
        return cls(
            id=int(data['id']),
            type=media_type,
            status=status,
            rating=rating,
            genre_ids=[int(g) for g in data.get('genre_ids') or []],
            added_at=float(data.get('added_at') or 0.0),
            title=data.get('title') or '',
        )


@dataclass
class TasteProfile:
    vector: dict[str, float]
    confidence: dict[str, float] | None = None


@dataclass
class FilterOptions:
    fetch_movies: bool = True
    fetch_tv: bool = True
    filter_genre_ids: list[int] = field(default_factory=list)

    @property
    def is_filtered(self) -> bool:
        """Any ad-hoc narrowing; filtered results never touch the result cache."""
        return bool(self.filter_genre_ids) or not self.fetch_movies or not self.fetch_tv

    def allows(self, media_type: str) -> bool:
        if media_type == 'movie':
            return self.fetch_movies
        if media_type == 'tv':
            return self.fetch_tv
        return False

    @property
    def media_types(self) -> list[str]:
        return [t for t in MEDIA_TYPES if self.allows(t)]


@dataclass
class ScoredCandidate:
    id: int
    media_type: str
    source: str
    genre_ids: list[int] = field(default_factory=list)
    matched_genres: list[int] = field(default_factory=list)
    similar_to_id: int | None = None
    similar_to_title: str | None = None
    title: str = 'Unknown'
    popularity: float = 0.0
    vote_average: float = 0.0
    vote_count: int | None = None
    release_date: str | None = None
    original_language: str | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    overview: str = ''
    score: float = 0.0

    @property
    def key(self) -> tuple[str, int]:
        return (self.media_type, self.id)

    @property
    def primary_genre(self) -> int | None:
        return self.genre_ids[0] if self.genre_ids else None

    @property
    def release_year(self) -> int | None:
        if not self.release_date or len(self.release_date) < 4:
            return None
        try:
            return int(self.release_date[:4])
        except ValueError:
            return None

    @classmethod
    def from_catalog(
        cls,
        item: dict[str, Any],
        media_type: str,
        source: str,
        matched_genres: list[int] | None = None,
        similar_to_id: int | None = None,
        similar_to_title: str | None = None,
    ) -> 'ScoredCandidate':
        """Project a raw discover/similar result onto a candidate."""
        return cls(
            id=int(item['id']),
            media_type=media_type,
            source=source,
            genre_ids=list(item.get('genre_ids') or []),
            matched_genres=list(matched_genres or []),
            similar_to_id=similar_to_id,
            similar_to_title=similar_to_title,
            title=item.get('title') or item.get('name') or 'Unknown',
            popularity=float(item.get('popularity') or 0.0),
            vote_average=float(item.get('vote_average') or 0.0),
            vote_count=item.get('vote_count'),
            release_date=item.get('release_date') or item.get('first_air_date'),
            original_language=item.get('original_language'),
            poster_path=item.get('poster_path'),
            backdrop_path=item.get('backdrop_path'),
            overview=item.get('overview') or '',
        )


@dataclass(frozen=True)
class Recommendation:
    id: int
    type: str
    score: float
    reason: str
    source: str
    metadata: dict = field(default_factory=dict)

    @property
    def key(self) -> str:
        return content_key(self.type, self.id)

    @classmethod
    def from_candidate(cls, candidate: ScoredCandidate, reason: str) -> 'Recommendation':
        return cls(
            id=candidate.id,
            type=candidate.media_type,
            score=candidate.score,
            reason=reason,
            source=candidate.source,
            metadata={
                'title': candidate.title,
                'poster_path': candidate.poster_path,
                'backdrop_path': candidate.backdrop_path,
                'overview': candidate.overview,
                'release_date': candidate.release_date,
                'vote_average': candidate.vote_average,
                'genre_ids': list(candidate.genre_ids),
                'popularity': candidate.popularity,
                'original_language': candidate.original_language,
            },
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.type,
            'score': self.score,
            'reason': self.reason,
            'source': self.source,
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Recommendation':
        if data['type'] not in MEDIA_TYPES:
            raise ValueError(f"Unknown media type: {data['type']}")
        source = data.get('source', 'genre')
        if source not in SOURCES:
            raise ValueError(f"Unknown recommendation source: {source}")
        return cls(
            id=int(data['id']),
            type=data['type'],
            score=float(data['score']),
            reason=data.get('reason', ''),
            source=source,
            metadata=dict(data.get('metadata') or {}),
        )
