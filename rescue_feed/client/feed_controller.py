# rescue_feed/client/feed_controller.py
"""
무한 스크롤 + 당겨서 새로고침 피드 상태 컨트롤러.

화면(UI) 프레임워크와 무관하게 목록 상태만 관리합니다.
- 마운트 시 첫 페이지를 요청하고, 센티널이 보이면 다음 페이지를 요청합니다.
- 새로고침은 epoch 를 올려 그 이전에 출발한 요청의 응답을 모두 버립니다.
- 이미 받은 항목과 키가 같은 항목은 다시 추가하지 않습니다.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from rescue_feed.utils.cursor import encode_cursor
from rescue_feed.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)

Page = Dict[str, Any]
FetchPage = Callable[[int, Optional[str]], Awaitable[Page]]

DEFAULT_PULL_THRESHOLD = 70.0
DEFAULT_MAX_PULL = 120.0


def case_key(item: Dict[str, Any]) -> str:
    return item["case_id"]


def case_cursor(item: Dict[str, Any]) -> str:
    """목록 마지막 항목으로 다음 페이지 커서를 만듭니다. created_at 은 datetime 또는 ISO 문자열."""
    created_at = item["created_at"]
    if not isinstance(created_at, datetime):
        created_at = DateTimeUtils.parse_iso_datetime(created_at)
    return encode_cursor(created_at, item["case_id"])


class FeedController:

    def __init__(self, fetch_page: FetchPage, page_size: int = 10,
                 pull_threshold: float = DEFAULT_PULL_THRESHOLD, max_pull: float = DEFAULT_MAX_PULL,
                 item_key: Callable[[Dict[str, Any]], str] = case_key,
                 cursor_for: Callable[[Dict[str, Any]], str] = case_cursor):
        self.fetch_page = fetch_page
        self.page_size = page_size
        self.pull_threshold = pull_threshold
        self.max_pull = max_pull
        self.item_key = item_key
        self.cursor_for = cursor_for

        self.items: List[Dict[str, Any]] = []
        self._keys = set()
        self.has_more = True
        self.is_mounted = False
        self.is_loading_more = False
        self.is_refreshing = False
        self.pull_offset = 0.0
        self.error: Optional[Exception] = None
        # 새로고침마다 증가. 요청 시점의 epoch 와 다르면 응답을 버립니다.
        self.epoch = 0

    async def mount(self) -> bool:
        if self.is_mounted:
            return False
        self.is_mounted = True
        return await self.refresh()

    async def load_more(self) -> bool:
        """다음 페이지를 요청합니다. 이미 로딩 중이거나 새로고침 중이거나 더 없으면 아무것도 하지 않습니다."""
        if self.is_loading_more or self.is_refreshing or not self.has_more:
            return False

        issued_epoch = self.epoch
        cursor = self.cursor_for(self.items[-1]) if self.items else None
        self.is_loading_more = True
        try:
            page = await self.fetch_page(self.page_size, cursor)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if issued_epoch == self.epoch:
                self.is_loading_more = False
                self.error = e
                logger.warning(f"Feed load_more failed: {e}")
            return False

        if issued_epoch != self.epoch:
            logger.debug(f"Discarding stale page (epoch {issued_epoch} != {self.epoch})")
            return False
        self.is_loading_more = False
        self.error = None
        self._apply_page(page)
        return True

    async def refresh(self) -> bool:
        """목록을 비우고 첫 페이지부터 다시 받습니다. 진행 중인 새로고침이 있으면 무시합니다."""
        if self.is_refreshing:
            return False

        self.epoch += 1
        issued_epoch = self.epoch
        self.is_refreshing = True
        self.is_loading_more = False
        self.items = []
        self._keys = set()
        self.has_more = True
        self.error = None
        try:
            page = await self.fetch_page(self.page_size, None)
        except asyncio.CancelledError:
            self.is_refreshing = False
            raise
        except Exception as e:
            self.is_refreshing = False
            self.error = e
            logger.warning(f"Feed refresh failed: {e}")
            return False

        self.is_refreshing = False
        if issued_epoch != self.epoch:
            return False
        self._apply_page(page)
        return True

    async def retry(self) -> bool:
        """마지막 실패한 요청을 다시 시도합니다."""
        if self.error is None:
            return False
        if not self.items:
            return await self.refresh()
        return await self.load_more()

    async def on_sentinel_visible(self, visible: bool = True) -> bool:
        if not visible:
            return False
        return await self.load_more()

    # --- 당겨서 새로고침 ---
    def on_drag(self, delta_y: float, scroll_top: float = 0.0) -> float:
        """목록 최상단에서 아래로 당긴 거리를 누적합니다. 반환값은 [0, max_pull] 범위입니다."""
        if scroll_top > 0 or self.is_refreshing:
            self.pull_offset = 0.0
        else:
            self.pull_offset = min(max(self.pull_offset + delta_y, 0.0), self.max_pull)
        return self.pull_offset

    async def on_release(self, scroll_top: float = 0.0) -> bool:
        triggered = scroll_top <= 0 and self.pull_offset >= self.pull_threshold
        self.pull_offset = 0.0
        if not triggered:
            return False
        return await self.refresh()

    def _apply_page(self, page: Page) -> None:
        for item in page.get("items") or []:
            key = self.item_key(item)
            if key in self._keys:
                continue
            self._keys.add(key)
            self.items.append(item)
        self.has_more = bool(page.get("has_more"))


class AsyncPageFetcher:
    """동기 CaseFeedClient.list_cases 를 FeedController 가 기다릴 수 있는 코루틴으로 감쌉니다."""

    def __init__(self, client, **filters):
        self.client = client
        self.filters = filters

    async def __call__(self, limit: int, cursor: Optional[str]) -> Page:
        return await asyncio.to_thread(self.client.list_cases, limit, cursor, **self.filters)
