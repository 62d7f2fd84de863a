from html import escape
from typing import List, Optional, Tuple

from ..data.records import SchoolRecord
from .badge import tier_color

FONT_STACK = "'PingFang SC', 'Microsoft YaHei', 'Hiragino Sans GB', 'WenQuanYi Micro Hei', sans-serif"


def _rows(record: SchoolRecord) -> List[Tuple[str, Optional[str]]]:
    def count(value: Optional[int]) -> Optional[str]:
        return None if value is None else f"{value}人"

    path = " / ".join(record.features.education_path) or None
    return [
        ("梯队", record.tier),
        ("描述", record.description),
        ("统招线", None if record.score is None else str(record.score)),
        ("区排名", record.district_rank),
        ("2025年招生", count(record.enrollment_2025)),
        ("报名人数", count(record.applicants)),
        ("中签率", record.acceptance_rate),
        ("特色优势", record.features.advantages),
        ("升学方向", path),
        ("地址", record.address),
    ]


def format_detail(record: SchoolRecord) -> str:
    color = tier_color(record.tier)
    lines = [
        f'<div style="padding: 10px; max-width: 300px; font-family: {FONT_STACK};">',
        f'<h3 style="margin: 0 0 10px 0; color: {color}; border-bottom: 2px solid {color}; '
        f'padding-bottom: 5px; font-size: 16px;">{escape(record.name)}</h3>',
        '<div style="font-size: 14px; line-height: 1.5;">',
    ]
    for label, value in _rows(record):
        if value is None or value == "":
            continue
        lines.append(f'<p style="margin: 5px 0;"><strong>{label}：</strong>{escape(value)}</p>')
    lines.append("</div>")
    lines.append("</div>")
    return "\n".join(lines)
