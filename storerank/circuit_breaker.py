"""上流 API 呼び出し用のサーキットブレーカー.

closed → (連続失敗 max_failures 回) → open → (最終失敗から reset_window 経過) → closed
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from storerank.config import CIRCUIT_MAX_FAILURES, CIRCUIT_RESET_WINDOW

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CircuitState:
    """ブレーカー状態のスナップショット."""

    failure_count: int
    last_failure_at: float | None
    open: bool


class CircuitBreaker:
    """上流依存先ごとに1つ生成し、全リクエストで共有する."""

    def __init__(
        self,
        name: str,
        max_failures: int = CIRCUIT_MAX_FAILURES,
        reset_window: float = CIRCUIT_RESET_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.max_failures = max_failures
        self.reset_window = reset_window
        self._clock = clock
        self._lock = threading.Lock()
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._open = False

    def is_open(self) -> bool:
        """呼び出しを遮断すべきかどうか. 期限を過ぎていればここで closed に戻す."""
        with self._lock:
            if self._open and self._window_elapsed():
                self._close()
                logger.info("サーキット %s: リセット期間経過のため closed に戻しました", self.name)
            return self._open

    def record_success(self) -> None:
        """成功を記録し、失敗カウントをリセットする."""
        with self._lock:
            if self._open:
                logger.info("サーキット %s: 成功を記録し closed に戻しました", self.name)
            self._close()

    def record_failure(self) -> None:
        """失敗を記録し、上限に達したら open にする."""
        with self._lock:
            # 前回の失敗から期間が空いていれば連続失敗とみなさない
            if self._window_elapsed():
                self._close()
            self._failure_count += 1
            self._last_failure_at = self._clock()
            if not self._open and self._failure_count >= self.max_failures:
                self._open = True
                logger.error(
                    "サーキット %s: 連続失敗 %d 回のため open にしました",
                    self.name, self._failure_count,
                )

    def state(self) -> CircuitState:
        """現在の状態のスナップショットを返す."""
        with self._lock:
            return CircuitState(
                failure_count=self._failure_count,
                last_failure_at=self._last_failure_at,
                open=self._open,
            )

    def reset(self) -> None:
        """手動リセット."""
        with self._lock:
            self._close()

    def _window_elapsed(self) -> bool:
        """最後の失敗からリセット期間が経過したか."""
        return (
            self._last_failure_at is not None
            and self._clock() - self._last_failure_at > self.reset_window
        )

    def _close(self) -> None:
        """closed に戻す. ロック取得済みで呼ぶこと."""
        self._open = False
        self._failure_count = 0
