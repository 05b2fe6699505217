"""ID 生成ユーティリティ。

復習アイテムの ID は `<kind>_<payload_ref>_<uuid>` 形式とし、同じ詩句を
複数回登録しても衝突しないよう末尾に UUID を付ける。
"""

from __future__ import annotations

import uuid

from .models import ReviewItemKind


def generate_review_item_id(kind: ReviewItemKind, payload_ref: str) -> str:
    """復習アイテムの新規 ID を生成する。"""

    ref = (payload_ref or "").strip().replace(" ", "_")
    return f"{kind.value}_{ref}_{uuid.uuid4().hex[:12]}"
