"""Shellstrap UI: item delegates (shell syntax emphasis)."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

from PyQt6.QtCore import Qt, QModelIndex
from PyQt6.QtGui import QFont, QBrush, QColor, QPainter, QPen
from PyQt6.QtWidgets import QStyledItemDelegate, QStyle

class ShellSyntaxDelegate(QStyledItemDelegate):
    """
    Lightweight POSIX shell emphasis for the text columns (1 and 3).
    Adjusts foreground and font weight only; backgrounds remain from model.
    Tokenization is cached per text.
    """

    SH_KEYWORDS = {
        "if", "then", "else", "elif", "fi", "case", "esac", "in", "for",
        "while", "until", "do", "done", "function", "export", "alias",
        "unset", "eval", "source", "return", "local",
    }

    RE_VAR = re.compile(r"\$(?:\{[^}]*\}|[A-Za-z_][A-Za-z_0-9]*|[@*#?$!0-9])")
    RE_WORD = re.compile(r"\b[A-Za-z_][A-Za-z_0-9]*\b")

    # Priority order when spans overlap
    PRIORITY = {"com": 60, "marker": 55, "var": 45, "str": 40, "kw": 30}

    def __init__(self, parent=None):
        super().__init__(parent)
        self._cache: Dict[str, List[Tuple[int, int, str]]] = {}
        # token style key -> (QColor, bold)
        self._styles = {
            "kw": (QColor(30, 45, 120), True),
            "str": (QColor(0, 90, 0), False),
            "com": (QColor(90, 90, 90), False),
            "var": (QColor(100, 60, 0), False),
            "marker": (QColor(20, 60, 140), True),
        }

    def tokenize(self, text: str) -> List[Tuple[int, int, str]]:
        if text in self._cache:
            return self._cache[text]

        spans: List[Tuple[int, int, str]] = []
        if not text:
            self._cache[text] = spans
            return spans

        # Managed-block markers are whole-line comments of the form "# >>> ... >>>"
        stripped = text.strip()
        if stripped.startswith("# >>> ") or stripped.startswith("# <<< "):
            spans.append((0, len(text), "marker"))
            self._cache[text] = spans
            return spans

        comment_pos = self._find_unquoted_hash(text)
        prefix = text if comment_pos is None else text[:comment_pos]
        if comment_pos is not None:
            spans.append((comment_pos, len(text), "com"))

        string_spans = self._find_string_spans(prefix)
        spans.extend(string_spans)

        for m in self.RE_VAR.finditer(prefix):
            spans.append((m.start(), m.end(), "var"))

        for m in self.RE_WORD.finditer(prefix):
            if m.group(0) in self.SH_KEYWORDS:
                s, e = m.start(), m.end()
                if not any(ss <= s < se for ss, se, _k in string_spans):
                    spans.append((s, e, "kw"))

        spans.sort(key=lambda x: (x[0], x[1], x[2]))
        self._cache[text] = spans
        return spans

    def _find_unquoted_hash(self, s: str) -> Optional[int]:
        in_single = False
        in_double = False
        esc = False
        for i, ch in enumerate(s):
            if esc:
                esc = False
                continue
            if ch == "\\" and not in_single:
                esc = True
                continue
            if ch == "'" and not in_double:
                in_single = not in_single
            elif ch == '"' and not in_single:
                in_double = not in_double
            elif ch == "#" and not in_single and not in_double:
                # only a comment at word start (e.g. not "${#var}" or "a#b")
                if i == 0 or s[i - 1] in " \t;":
                    return i
        return None

    def _find_string_spans(self, s: str) -> List[Tuple[int, int, str]]:
        spans: List[Tuple[int, int, str]] = []
        i = 0
        while i < len(s):
            ch = s[i]
            if ch in ("'", '"'):
                q = ch
                j = i + 1
                esc = False
                while j < len(s):
                    cj = s[j]
                    if esc:
                        esc = False
                    elif cj == "\\" and q == '"':
                        esc = True
                    elif cj == q:
                        break
                    j += 1
                # unterminated strings run to end of line
                end = min(j + 1, len(s))
                spans.append((i, end, "str"))
                i = end
            else:
                i += 1
        return spans

    def _style_at(self, spans: List[Tuple[int, int, str]], pos: int) -> Optional[str]:
        best = None
        bestp = -1
        for s, e, k in spans:
            if s <= pos < e:
                p = self.PRIORITY.get(k, 0)
                if p > bestp:
                    bestp = p
                    best = k
        return best

    def paint(self, painter: QPainter, option, index: QModelIndex) -> None:
        painter.save()

        bg = index.data(Qt.ItemDataRole.BackgroundRole)
        selected = bool(option.state & QStyle.StateFlag.State_Selected)
        if selected:
            painter.fillRect(option.rect, option.palette.highlight())
        elif isinstance(bg, QBrush):
            painter.fillRect(option.rect, bg)

        text = index.data(Qt.ItemDataRole.DisplayRole)
        text = "" if text is None else str(text)

        if selected:
            base_pen = QPen(option.palette.highlightedText().color())
        else:
            base_pen = QPen(option.palette.text().color())
        painter.setPen(base_pen)
        painter.setFont(option.font)
        painter.setClipRect(option.rect)

        fm = painter.fontMetrics()
        x = option.rect.x() + 6
        y = option.rect.y()
        h = option.rect.height()
        baseline = y + (h + fm.ascent() - fm.descent()) // 2

        spans = self.tokenize(text) if index.column() in (1, 3) else []
        if not spans or selected:
            elided = fm.elidedText(text, Qt.TextElideMode.ElideRight, option.rect.width() - 10)
            painter.drawText(x, baseline, elided)
            painter.restore()
            return

        boundaries = {0, len(text)}
        for s, e, _k in spans:
            boundaries.add(max(0, min(len(text), s)))
            boundaries.add(max(0, min(len(text), e)))
        b = sorted(boundaries)

        cur_x = x
        for i in range(len(b) - 1):
            s = b[i]
            seg = text[s:b[i + 1]]
            if not seg:
                continue
            k = self._style_at(spans, s)
            if k and k in self._styles:
                col, bold = self._styles[k]
                painter.setPen(QPen(col))
                f = QFont(option.font)
                f.setBold(bold)
                painter.setFont(f)
            else:
                painter.setPen(base_pen)
                painter.setFont(option.font)
            painter.drawText(cur_x, baseline, seg)
            cur_x += fm.horizontalAdvance(seg)

        painter.restore()
