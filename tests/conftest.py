import asyncio
from collections import defaultdict
from collections.abc import Callable
from copy import deepcopy
from datetime import UTC, datetime, timedelta
from types import TracebackType

import pytest

from social_publisher.application.services import (
    AccountResolver,
    OutcomeRecorder,
    RefreshLocks,
    TokenStore,
)
from social_publisher.domain.entities import (
    LinkedAccount,
    Media,
    MediaKind,
    Notification,
    Platform,
    Post,
    PostStatus,
    SocialAccount,
    SocialAccountPage,
)
from social_publisher.domain.errors import InvalidStatusTransition
from social_publisher.domain.ports import (
    AssetReference,
    NotificationRepository,
    PostRepository,
    PublishAdapter,
    PublishOutcome,
    ResolvedAccount,
    SocialAccountRepository,
    TokenCipher,
    TokenGrant,
    UnitOfWork,
)
from social_publisher.infrastructure.idempotency import InMemoryIdempotencyService

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class InMemoryStore:
    """Committed rows plus the writes staged by the open unit of work."""

    def __init__(self) -> None:
        self.posts: dict[str, Post] = {}
        self.notifications: list[Notification] = []
        self.accounts: dict[str, SocialAccount] = {}
        self.pages: dict[str, SocialAccountPage] = {}
        self.brands: dict[str, str] = {}
        self.members: defaultdict[str, set[str]] = defaultdict(set)
        self.brand_accounts: defaultdict[str, list[str]] = defaultdict(list)
        self.connections: defaultdict[str, set[str]] = defaultdict(set)
        self.staged: list[Callable[[], None]] = []
        self.commits = 0
        self.rollbacks = 0

    def add_post(self, post: Post) -> None:
        self.posts[post.id] = deepcopy(post)

    def add_account(
        self,
        account: SocialAccount,
        brand_id: str | None = None,
        connected_by: tuple[str, ...] = (),
    ) -> None:
        self.accounts[account.id] = deepcopy(account)
        if brand_id:
            self.brand_accounts[brand_id].append(account.id)
        self.connections[account.id].update(connected_by)

    def add_page(self, page: SocialAccountPage) -> None:
        self.pages[page.id] = deepcopy(page)

    def notifications_for(self, post_id: str) -> list[Notification]:
        return [n for n in self.notifications if n.metadata.get("postId") == post_id]


class InMemoryUnitOfWork(UnitOfWork):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type:
            await self.rollback()

    async def commit(self) -> None:
        for apply in self._store.staged:
            apply()
        self._store.staged.clear()
        self._store.commits += 1

    async def rollback(self) -> None:
        self._store.staged.clear()
        self._store.rollbacks += 1


class InMemoryPostRepository(PostRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def get_by_id(self, post_id: str) -> Post | None:
        post = self._store.posts.get(post_id)
        return deepcopy(post) if post else None

    async def list_due(self, now: datetime, limit: int) -> list[str]:
        due = [
            p
            for p in self._store.posts.values()
            if p.status is PostStatus.SCHEDULED and p.scheduled_at and p.scheduled_at <= now
        ]
        due.sort(key=lambda p: p.scheduled_at)
        return [p.id for p in due[:limit]]

    async def save_status(self, post: Post) -> None:
        stored = self._store.posts.get(post.id)
        if stored is None or stored.status.is_terminal:
            raise InvalidStatusTransition(f"Post {post.id} is missing or already finalized")
        snapshot = deepcopy(post)
        self._store.staged.append(lambda: self._store.posts.__setitem__(post.id, snapshot))


class InMemoryNotificationRepository(NotificationRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def add(self, notification: Notification) -> None:
        self._store.staged.append(lambda: self._store.notifications.append(notification))


class InMemorySocialAccountRepository(SocialAccountRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def list_brand_accounts(self, platform: Platform, brand_id: str) -> list[LinkedAccount]:
        linked = []
        for account_id in self._store.brand_accounts.get(brand_id, []):
            account = self._store.accounts[account_id]
            if account.platform is platform:
                linked.append(
                    LinkedAccount(
                        account=deepcopy(account),
                        connected_by=set(self._store.connections[account_id]),
                    )
                )
        return linked

    async def list_brand_member_ids(self, brand_id: str) -> set[str]:
        return set(self._store.members.get(brand_id, set()))

    async def get_account(self, account_id: str) -> SocialAccount | None:
        account = self._store.accounts.get(account_id)
        return deepcopy(account) if account else None

    async def get_page(self, page_id: str) -> SocialAccountPage | None:
        page = self._store.pages.get(page_id)
        return deepcopy(page) if page else None

    async def list_active_pages(self, account_id: str, platform: Platform) -> list[SocialAccountPage]:
        pages = [
            deepcopy(p)
            for p in self._store.pages.values()
            if p.social_account_id == account_id and p.platform is platform and p.is_active
        ]
        # Insertion order stands in for created_at
        return list(reversed(pages))

    async def get_brand_name(self, brand_id: str) -> str | None:
        return self._store.brands.get(brand_id)

    async def update_account_tokens(self, account_id, access_token, refresh_token, expires_at, expected_version):
        return self._stage_tokens(
            self._store.accounts.get(account_id), access_token, refresh_token, expires_at, expected_version
        )

    async def update_page_tokens(self, page_id, access_token, refresh_token, expires_at, expected_version):
        return self._stage_tokens(
            self._store.pages.get(page_id), access_token, refresh_token, expires_at, expected_version
        )

    def _stage_tokens(self, stored, access_token, refresh_token, expires_at, expected_version) -> bool:
        if stored is None or stored.token_version != expected_version:
            return False

        def apply() -> None:
            stored.access_token = access_token
            if refresh_token is not None:
                stored.refresh_token = refresh_token
            stored.token_expires_at = expires_at
            stored.token_version += 1

        self._store.staged.append(apply)
        return True


class FakeCipher(TokenCipher):
    """Reversible stand-in that marks ciphertext with an ``enc:`` prefix."""

    def encrypt(self, token: str) -> str:
        return f"enc:{token}"

    def decrypt(self, stored: str) -> str:
        return stored.removeprefix("enc:")


class FakeAdapter(PublishAdapter):
    """Scriptable adapter that records the pipeline stages it sees."""

    def __init__(self, platform: Platform = Platform.LINKEDIN) -> None:
        self._platform = platform
        self.calls: list[tuple] = []
        self.validation_error: Exception | None = None
        self.refresh_error: Exception | None = None
        self.upload_error: Exception | None = None
        self.publish_error: Exception | None = None
        self.grant = TokenGrant(access_token="fresh-token", expires_in=3600, refresh_token="fresh-refresh")
        self.outcome = PublishOutcome(external_id="ext-1", external_url="https://example.com/posts/ext-1")
        self.refresh_delay = 0.0
        self.on_refresh: Callable[[], None] | None = None

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def refresh_calls(self) -> int:
        return sum(1 for call in self.calls if call[0] == "refresh")

    async def resolve_account(self, post: Post, resolver) -> ResolvedAccount:
        holder = await resolver.resolve(post, self._platform)
        self.calls.append(("resolve", holder.id))
        return ResolvedAccount(holder=holder, author_identity=f"author:{holder.id}")

    def validate(self, post: Post) -> None:
        self.calls.append(("validate",))
        if self.validation_error:
            raise self.validation_error

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        self.calls.append(("refresh", refresh_token))
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if self.on_refresh:
            self.on_refresh()
        if self.refresh_error:
            raise self.refresh_error
        return self.grant

    async def upload_media(self, media: Media, access_token: str, resolved: ResolvedAccount) -> AssetReference:
        self.calls.append(("upload", media.id, access_token))
        if self.upload_error:
            raise self.upload_error
        return AssetReference(kind=MediaKind.IMAGE, content_type="image/jpeg", reference="asset-1")

    async def publish(self, post, access_token, resolved, asset) -> PublishOutcome:
        self.calls.append(("publish", access_token, asset))
        if self.publish_error:
            raise self.publish_error
        return self.outcome


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow(store) -> InMemoryUnitOfWork:
    return InMemoryUnitOfWork(store)


@pytest.fixture
def post_repository(store) -> InMemoryPostRepository:
    return InMemoryPostRepository(store)


@pytest.fixture
def notification_repository(store) -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository(store)


@pytest.fixture
def account_repository(store) -> InMemorySocialAccountRepository:
    return InMemorySocialAccountRepository(store)


@pytest.fixture
def cipher() -> FakeCipher:
    return FakeCipher()


@pytest.fixture
def recorder(post_repository, notification_repository, uow) -> OutcomeRecorder:
    return OutcomeRecorder(post_repository, notification_repository, uow)


@pytest.fixture
def resolver(account_repository, recorder) -> AccountResolver:
    return AccountResolver(account_repository, recorder)


@pytest.fixture
def refresh_locks() -> RefreshLocks:
    return RefreshLocks()


@pytest.fixture
def token_store(account_repository, cipher, uow, refresh_locks) -> TokenStore:
    return TokenStore(account_repository, cipher, uow, refresh_locks, clock=lambda: NOW)


@pytest.fixture
def idempotency() -> InMemoryIdempotencyService:
    return InMemoryIdempotencyService()


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def make_post():
    def _make(**overrides) -> Post:
        values = dict(
            id="post-1",
            user_id="user-1",
            brand_id="brand-1",
            content="Hello world",
            platform=Platform.LINKEDIN,
            status=PostStatus.SCHEDULED,
            created_at=NOW - timedelta(hours=1),
            updated_at=NOW - timedelta(hours=1),
            scheduled_at=NOW - timedelta(minutes=1),
        )
        values.update(overrides)
        return Post(**values)

    return _make


@pytest.fixture
def make_account():
    def _make(**overrides) -> SocialAccount:
        values = dict(
            id="acct-1",
            platform=Platform.LINKEDIN,
            platform_user_id="li-member-1",
            platform_username="acme",
            access_token="enc:live-token",
            refresh_token="enc:refresh-token",
            token_expires_at=NOW + timedelta(days=1),
        )
        values.update(overrides)
        return SocialAccount(**values)

    return _make


@pytest.fixture
def make_page():
    def _make(**overrides) -> SocialAccountPage:
        values = dict(
            id="page-1",
            social_account_id="acct-1",
            platform=Platform.LINKEDIN,
            page_id="org-1",
            name="Acme Org",
            access_token="enc:page-token",
            refresh_token="enc:page-refresh",
            token_expires_at=NOW + timedelta(days=1),
        )
        values.update(overrides)
        return SocialAccountPage(**values)

    return _make


@pytest.fixture
def connected_account(store, make_account) -> SocialAccount:
    """LinkedIn account on brand-1 connected by user-1, a brand member."""
    account = make_account()
    store.brands["brand-1"] = "Acme Co"
    store.members["brand-1"].add("user-1")
    store.add_account(account, brand_id="brand-1", connected_by=("user-1",))
    return account
