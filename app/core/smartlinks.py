"""
SmartLink store: CRUD over `smartlinks`, scoped by owner.

owner_id=None means an admin / unscoped call; any other value restricts the
operation to rows that user owns.

Kept here rather than as DB constraints (the messages are user-facing):
  - plan quota checked before insert, re-checked under the user row lock
  - users.smartlinks_count moves in the same transaction as insert/delete
  - delete removes analytics first, then the smartlink, then decrements
  - slug never changes after insert
"""

import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.core.exceptions import (
    InvalidSmartLinkData,
    InvalidSourceUrl,
    OwnerNotFound,
    QuotaExceeded,
    ResolutionError,
    SlugSpaceExhausted,
    SmartLinkNotFound,
)
from app.core.platforms import ParsedAggregate, Platform
from app.core.resolver import LinkResolver, normalize_source_url
from app.core.slug import SlugGenerator
from app.models.tables import Analytics, SmartLink, User
from app.schemas import (
    Customization,
    SmartLinkCreate,
    SmartLinkPage,
    SmartLinkRead,
    SmartLinkSummary,
    SmartLinkUpdate,
    TrackingPixels,
)

import structlog

logger = structlog.get_logger()

_platform_list = TypeAdapter(list[dict[str, Any]])

_SIMPLE_FIELDS = ("title", "artist", "description", "cover_url", "preview_audio_url", "template", "is_active")

# Insert attempts when a concurrent create takes the same slug
_SLUG_INSERT_ATTEMPTS = 3


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _is_slug_conflict(exc: IntegrityError) -> bool:
    return "slug" in str(exc.orig).lower()


def _dump_platforms(platforms: list[Platform]) -> list[dict[str, Any]]:
    return [p.model_dump() for p in platforms]


def _load_platforms(raw: Any, smartlink_id: int | None) -> list[Platform]:
    """Validate stored platform JSON. Entries that no longer validate are skipped."""
    try:
        items = _platform_list.validate_python(raw or [])
    except ValidationError:
        logger.warning("smartlink_platforms_unreadable", smartlink_id=smartlink_id)
        return []

    platforms = []
    for item in items:
        try:
            platforms.append(Platform.model_validate(item))
        except ValidationError:
            logger.warning("smartlink_platform_dropped", smartlink_id=smartlink_id, platform=item.get("key"))
    return platforms


def _load_model(model, raw: Any, smartlink_id: int | None):
    if not raw:
        return model()
    try:
        return model.model_validate(raw)
    except ValidationError:
        logger.warning("smartlink_json_unreadable", smartlink_id=smartlink_id, field=model.__name__)
        return model()


def to_read(link: SmartLink, owner_name: str | None = None) -> SmartLinkRead:
    return SmartLinkRead(
        id=link.id,
        user_id=link.user_id,
        slug=link.slug,
        title=link.title,
        artist=link.artist,
        description=link.description,
        cover_url=link.cover_url,
        preview_audio_url=link.preview_audio_url,
        platforms=_load_platforms(link.platforms, link.id),
        template=link.template or "default",
        customization=_load_model(Customization, link.customization, link.id),
        tracking_pixels=_load_model(TrackingPixels, link.tracking_pixels, link.id),
        is_active=bool(link.is_active),
        click_count=link.click_count or 0,
        source_url=link.source_url,
        odesli_data=link.odesli_data,
        odesli_fetched_at=link.odesli_fetched_at,
        created_at=link.created_at,
        updated_at=link.updated_at,
        owner_name=owner_name,
    )


class SmartLinkStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: LinkResolver,
        slugs: SlugGenerator,
        settings: Settings,
    ) -> None:
        self._session_factory = session_factory
        self._resolver = resolver
        self._slugs = slugs
        self._settings = settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_quota(self, user: User) -> None:
        limit = self._settings.quota_for_plan(user.plan)
        if (user.smartlinks_count or 0) >= limit:
            logger.info("smartlink_quota_exceeded", user_id=user.id, plan=user.plan, limit=limit)
            raise QuotaExceeded(user.plan or "free", limit)

    async def _resolve_quietly(self, source_url: str) -> ParsedAggregate | None:
        """Resolve for enrichment. A bad URL is the caller's problem; anything else is logged."""
        try:
            return await self._resolver.resolve(source_url)
        except InvalidSourceUrl:
            raise
        except ResolutionError as exc:
            logger.warning("smartlink_resolution_skipped", source_url=source_url, error=str(exc))
            return None

    @staticmethod
    async def _slug_exists(session: AsyncSession, slug: str) -> bool:
        result = await session.execute(select(SmartLink.id).where(SmartLink.slug == slug))
        return result.first() is not None

    @staticmethod
    def _scoped(stmt, smartlink_id: int, owner_id: int | None):
        stmt = stmt.where(SmartLink.id == smartlink_id)
        if owner_id is not None:
            stmt = stmt.where(SmartLink.user_id == owner_id)
        return stmt

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    async def create(self, owner_id: int, data: SmartLinkCreate) -> SmartLinkRead:
        # Quota pre-check before spending an Odesli call
        async with self._session_factory() as session:
            user = await session.get(User, owner_id)
            if user is None:
                raise OwnerNotFound(owner_id)
            self._check_quota(user)

        resolved = await self._resolve_quietly(data.source_url) if data.source_url else None

        # Caller-supplied values always win over resolved ones
        title = data.title or (resolved.title if resolved else None)
        if not title:
            raise InvalidSmartLinkData("A title is required (none supplied and none resolved)")
        platforms = data.platforms if data.platforms else (resolved.platforms if resolved else [])

        for attempt in range(1, _SLUG_INSERT_ATTEMPTS + 1):
            try:
                link, owner_name = await self._insert(owner_id, data, title, platforms, resolved)
                break
            except IntegrityError as exc:
                if not _is_slug_conflict(exc):
                    raise
                logger.warning("smartlink_slug_conflict", user_id=owner_id, attempt=attempt)
                if attempt == _SLUG_INSERT_ATTEMPTS:
                    raise SlugSpaceExhausted(attempt) from exc

        logger.info(
            "smartlink_created",
            smartlink_id=link.id,
            user_id=owner_id,
            slug=link.slug,
            resolved=resolved is not None,
            stale=bool(resolved and resolved.is_stale),
        )
        return to_read(link, owner_name)

    async def _insert(
        self,
        owner_id: int,
        data: SmartLinkCreate,
        title: str,
        platforms: list[Platform],
        resolved: ParsedAggregate | None,
    ) -> tuple[SmartLink, str | None]:
        """One insert transaction: quota re-check under the user row lock, slug, row, counter."""
        now = _utcnow()
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(User).where(User.id == owner_id).with_for_update()
            )
            user = result.scalar_one_or_none()
            if user is None:
                raise OwnerNotFound(owner_id)
            self._check_quota(user)

            slug = await self._slugs.generate(lambda s: self._slug_exists(session, s))

            link = SmartLink(
                user_id=owner_id,
                slug=slug,
                title=title,
                artist=data.artist or (resolved.artist if resolved else None) or None,
                description=data.description,
                cover_url=data.cover_url or (resolved.cover_url if resolved else None) or None,
                preview_audio_url=data.preview_audio_url,
                platforms=_dump_platforms(platforms),
                template=data.template or "default",
                customization=(data.customization or Customization()).model_dump(),
                tracking_pixels=(data.tracking_pixels or TrackingPixels()).model_dump(),
                source_url=data.source_url,
                odesli_data=resolved.payload if resolved else None,
                odesli_fetched_at=now if resolved else None,
            )
            session.add(link)
            await session.execute(
                update(User)
                .where(User.id == owner_id)
                .values(smartlinks_count=User.smartlinks_count + 1)
            )
            await session.flush()
            await session.refresh(link)
            owner_name = user.display_name
        return link, owner_name

    async def update(
        self,
        smartlink_id: int,
        owner_id: int | None,
        data: SmartLinkUpdate,
        refetch: bool = False,
    ) -> SmartLinkRead:
        """Partial replace. With ``refetch``, re-resolve the source URL: the raw payload
        is always refreshed, the platform list only when ``data.replace_platforms``."""
        if data.source_url:
            normalize_source_url(data.source_url)

        async with self._session_factory() as session:
            result = await session.execute(self._scoped(select(SmartLink.source_url), smartlink_id, owner_id))
            row = result.first()
            if row is None:
                raise SmartLinkNotFound(smartlink_id)
            stored_source_url = row.source_url

        source_url = data.source_url or stored_source_url
        resolved = None
        if refetch and source_url:
            resolved = await self._resolve_quietly(source_url)

        changes = data.model_dump(exclude_unset=True, exclude={"replace_platforms"})
        now = _utcnow()

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                self._scoped(select(SmartLink, User.display_name), smartlink_id, owner_id)
                .join(User, SmartLink.user_id == User.id)
                .with_for_update(of=SmartLink)
            )
            row = result.first()
            if row is None:
                raise SmartLinkNotFound(smartlink_id)
            link, owner_name = row

            if data.title is not None and not data.title.strip():
                raise InvalidSmartLinkData("Title cannot be empty")
            for field in _SIMPLE_FIELDS:
                if changes.get(field) is not None:
                    setattr(link, field, changes[field])
            if data.source_url:
                link.source_url = data.source_url
            if data.platforms is not None:
                link.platforms = _dump_platforms(data.platforms)
            if data.customization is not None:
                link.customization = data.customization.model_dump()
            if data.tracking_pixels is not None:
                link.tracking_pixels = data.tracking_pixels.model_dump()

            if resolved is not None:
                link.odesli_data = resolved.payload
                link.odesli_fetched_at = now
                if data.replace_platforms:
                    link.platforms = _dump_platforms(resolved.platforms)

            link.updated_at = now
            await session.flush()
            await session.refresh(link)

        logger.info(
            "smartlink_updated",
            smartlink_id=smartlink_id,
            fields=sorted(k for k, v in changes.items() if v is not None),
            refetched=resolved is not None,
        )
        return to_read(link, owner_name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, smartlink_id: int, owner_id: int | None = None) -> SmartLinkRead:
        async with self._session_factory() as session:
            result = await session.execute(
                self._scoped(select(SmartLink, User.display_name), smartlink_id, owner_id)
                .join(User, SmartLink.user_id == User.id)
            )
            row = result.first()
        if row is None:
            raise SmartLinkNotFound(smartlink_id)
        return to_read(row[0], row[1])

    async def get_by_slug(self, slug: str) -> SmartLinkRead:
        """Public lookup: active SmartLinks only."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(SmartLink, User.display_name)
                .join(User, SmartLink.user_id == User.id)
                .where(SmartLink.slug == slug, SmartLink.is_active.is_(True))
            )
            row = result.first()
        if row is None:
            raise SmartLinkNotFound(slug)
        return to_read(row[0], row[1])

    async def list_links(
        self,
        owner_id: int | None,
        *,
        limit: int = 20,
        offset: int = 0,
        search: str = "",
    ) -> SmartLinkPage:
        conditions = []
        if owner_id is not None:
            conditions.append(SmartLink.user_id == owner_id)

        search = (search or "").strip()
        if search:
            pattern = _like_pattern(search)
            matches = [
                SmartLink.title.ilike(pattern, escape="\\"),
                SmartLink.artist.ilike(pattern, escape="\\"),
            ]
            if owner_id is None:
                matches.append(User.display_name.ilike(pattern, escape="\\"))
            conditions.append(or_(*matches))

        async with self._session_factory() as session:
            result = await session.execute(
                select(SmartLink, User.display_name, User.email)
                .join(User, SmartLink.user_id == User.id)
                .where(*conditions)
                .order_by(SmartLink.created_at.desc(), SmartLink.id.desc())
                .limit(limit)
                .offset(offset)
            )
            rows = result.all()

            total_result = await session.execute(
                select(func.count(SmartLink.id))
                .select_from(SmartLink)
                .join(User, SmartLink.user_id == User.id)
                .where(*conditions)
            )
            total = total_result.scalar_one()

        admin = owner_id is None
        items = [
            SmartLinkSummary(
                id=link.id,
                slug=link.slug,
                title=link.title,
                artist=link.artist,
                cover_url=link.cover_url,
                is_active=bool(link.is_active),
                click_count=link.click_count or 0,
                created_at=link.created_at,
                updated_at=link.updated_at,
                owner_name=display_name if admin else None,
                owner_email=email if admin else None,
            )
            for link, display_name, email in rows
        ]
        return SmartLinkPage(items=items, total=total, has_more=offset + len(items) < total)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, smartlink_id: int, owner_id: int | None = None) -> bool:
        """False when the smartlink doesn't exist or isn't the caller's. Nothing is touched then."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                self._scoped(select(SmartLink.id, SmartLink.user_id), smartlink_id, owner_id)
                .with_for_update()
            )
            row = result.first()
            if row is None:
                logger.info("smartlink_delete_noop", smartlink_id=smartlink_id, owner_id=owner_id)
                return False

            # Analytics references smartlinks, so it goes first
            analytics = await session.execute(
                delete(Analytics).where(Analytics.smartlink_id == smartlink_id)
            )
            await session.execute(
                delete(SmartLink).where(SmartLink.id == smartlink_id)
            )
            await session.execute(
                update(User)
                .where(User.id == row.user_id)
                .values(smartlinks_count=case(
                    (User.smartlinks_count > 0, User.smartlinks_count - 1),
                    else_=0,
                ))
            )

        logger.info(
            "smartlink_deleted",
            smartlink_id=smartlink_id,
            user_id=row.user_id,
            analytics_rows=analytics.rowcount,
        )
        return True
