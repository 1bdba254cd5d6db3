"""Handlebars rendering for the fixed prompt blocks.

Templates use triple-stash ({{{var}}}) so names and actions are never
HTML-escaped. Blocks:

  CLOSING_TEMPLATE         output requirements, language rules, skill tags
  FALLBACK_TEMPLATE        minimal prompt for an unusable game state
  CHOICE_GUIDANCE_TEMPLATE choice-generation hints (see choices.py)
  EXISTING_ENTITIES_TEMPLATE  do-not-recreate warning (see context.py)
"""

from collections.abc import Callable
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_take(this, options, items, count):
    """{{#take array N}}...{{/take}} iterates over the first N items."""
    result = []
    for item in list(items or [])[:int(count)]:
        result.extend(options["fn"](item))
    return result


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} iterates over the last N items."""
    n = int(count)
    if n <= 0:
        return []
    result = []
    for item in list(items or [])[-n:]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "take": _helper_take,
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return "".join(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

SKILL_TAG_GUIDE = """HƯỚNG DẪN SỬ DỤNG TAG KỸ NĂNG:
- Khi một kỹ năng được THAY ĐỔI/NÂNG CẤP/GIẢI PHONG ẤN: Sử dụng [SKILL_UPDATE: oldSkill="tên kỹ năng cũ" newSkill="tên kỹ năng mới" target="tên nhân vật" description="mô tả kỹ năng mới"]
- Khi học kỹ năng HOÀN TOÀN MỚI (chưa từng có): Sử dụng [SKILL_LEARNED: name="tên kỹ năng" learner="tên nhân vật" description="mô tả"]
- KHÔNG BAO GIỜ tạo kỹ năng trùng lặp - luôn dùng SKILL_UPDATE để thay thế kỹ năng cũ
- Ví dụ: "Thiên Hồ Huyễn Linh Bí Pháp (đang phong ấn)" → "Thiên Hồ Huyễn Linh Bí Pháp (Sơ Giải)" phải dùng SKILL_UPDATE"""

CLOSING_TEMPLATE = """
{{#if extra_instruction}}{{{extra_instruction}}}
{{else}}{{#if allow_nsfw}}LƯU Ý: Chế độ NSFW đang BẬT.
{{/if}}{{/if}}YÊU CẦU: Tiếp tục câu chuyện dựa trên hành động và tri thức đã truy xuất.

**NGÔN NGỮ BẮT BUỘC:**
-BẮT BUỘC sử dụng 100% tiếng Việt trong toàn bộ nội dung (story, choices, descriptions)
-TUYỆT ĐỐI KHÔNG dùng tiếng Anh trừ tên riêng nước ngoài
-Quan hệ PHẢI dùng tiếng Việt: "friend"→"bạn bè", "enemy"→"kẻ thù", "ally"→"đồng minh", "lover"→"người yêu", "family"→"gia đình", "master"→"sư phụ", "rival"→"đối thủ"
-Kiểm tra kỹ lưỡng để không có từ tiếng Anh nào lọt vào câu chuyện
-Tuyệt đối không lập lại hành động của NPC ở lượt trước vào lượt này.

""" + SKILL_TAG_GUIDE

FALLBACK_TEMPLATE = """
Nhân vật: {{{pc_name}}}
Vị trí: {{{location}}}
Lượt: {{turn}}

--- HÀNH ĐỘNG CỦA NGƯỜI CHƠI ---
"{{{action}}}"

YÊU CẦU: Tiếp tục câu chuyện dựa trên hành động và tri thức đã truy xuất.
-Bắt buộc phải sử dụng 100% tiếng việt trừ danh từ riêng.
-Tuyệt đối không lập lại hành động của NPC ở lượt trước vào lượt này.

""" + SKILL_TAG_GUIDE

CHOICE_GUIDANCE_TEMPLATE = """
--- HƯỚNG DẪN TẠO LỰA CHỌN THÔNG MINH ---
{{#if recent}}**Tránh lặp lại các lựa chọn gần đây:**
{{#last recent 10}}• {{{this}}}
{{/last}}
{{/if}}{{#if situational}}**Tạo lựa chọn phù hợp với tình huống:**
{{#each situational}}• {{{this}}}
{{/each}}
{{/if}}{{#if party}}**Tạo lựa chọn tương tác với đồng hành:**
{{#take party 2}}• {{{this}}}
{{/take}}
{{/if}}{{#if motivation}}**Tạo lựa chọn hướng tới mục tiêu nhân vật:**
• Ít nhất 1-2 lựa chọn phải liên quan đến việc thực hiện mục tiêu: "{{{motivation}}}"
• Tạo cơ hội tiến gần hơn đến mục tiêu hoặc giải quyết trở ngại cản trở mục tiêu

{{/if}}**QUAN TRỌNG**: Lựa chọn phải phù hợp với tình huống hiện tại, không lặp lại những gì đã chọn gần đây, và tạo cơ hội phát triển câu chuyện theo hướng thú vị."""

EXISTING_ENTITIES_TEMPLATE = """
⚠️ THỰC THỂ ĐÃ TỒN TẠI - KHÔNG TẠO LẠI ⚠️
**QUAN TRỌNG**: Các thực thể sau ĐÃ TỒN TẠI trong game. KHÔNG tạo lại chúng bằng LORE_NPC, LORE_LOCATION, v.v. Thay vào đó sử dụng ENTITY_UPDATE để cập nhật thông tin:

{{#each groups}}{{{icon}}} **{{{label}}}**: {{{names}}}{{#if more}} và {{more}} khác{{/if}}
{{/each}}"""


def render_closing(extra_instruction: str = "", allow_nsfw: bool = False) -> str:
    return render_prompt(CLOSING_TEMPLATE, {
        "extra_instruction": extra_instruction,
        "allow_nsfw": allow_nsfw,
    })
