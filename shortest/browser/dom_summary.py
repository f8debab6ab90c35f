"""Compact DOM summary of the current page for the AI planner."""

from __future__ import annotations

import hashlib
import logging

from playwright.async_api import Page

logger = logging.getLogger(__name__)

MAX_ELEMENTS = 150

_SUMMARY_SCRIPT = """(maxElements) => {
    const interactiveTags = new Set(['a', 'button', 'input', 'select', 'textarea', 'summary']);
    const interactiveRoles = new Set([
        'button', 'link', 'textbox', 'checkbox', 'radio', 'combobox',
        'menuitem', 'tab', 'switch'
    ]);
    const textTags = new Set(['h1', 'h2', 'h3', 'label', 'p', 'li', 'td', 'span']);

    function getSelector(el) {
        if (el.dataset && el.dataset.testid) return `[data-testid="${el.dataset.testid}"]`;
        if (el.id) return `#${CSS.escape(el.id)}`;
        const tag = el.tagName.toLowerCase();
        if (el.name && ['input', 'select', 'textarea'].includes(tag)) {
            return `${tag}[name="${el.name}"]`;
        }
        if (el.getAttribute('aria-label')) {
            return `[aria-label="${el.getAttribute('aria-label')}"]`;
        }
        const text = (el.innerText || '').trim();
        if (text && text.length <= 40 && ['a', 'button'].includes(tag)) {
            return `${tag}:has-text("${text.replace(/"/g, '\\\\"')}")`;
        }
        return tag;
    }

    const results = [];
    for (const el of document.querySelectorAll('*')) {
        if (results.length >= maxElements) break;
        if (el.offsetParent === null && el.tagName.toLowerCase() !== 'body') continue;
        const tag = el.tagName.toLowerCase();
        const role = el.getAttribute('role') || '';
        const interactive = interactiveTags.has(tag) || interactiveRoles.has(role);
        if (interactive) {
            results.push({
                kind: 'control',
                tag: tag,
                type: el.type || '',
                selector: getSelector(el),
                text: (el.innerText || el.value || el.placeholder || '').trim().substring(0, 80),
            });
        } else if (textTags.has(tag) && el.children.length === 0) {
            const text = (el.innerText || '').trim();
            if (text) results.push({kind: 'text', tag: tag, text: text.substring(0, 120)});
        }
    }
    return results;
}"""


def format_summary(items: list[dict]) -> str:
    lines = []
    for item in items:
        if item.get("kind") == "control":
            type_part = f" type={item['type']}" if item.get("type") else ""
            lines.append(f"[{item.get('tag')}{type_part}] {item.get('selector')} \"{item.get('text', '')}\"")
        else:
            lines.append(f"<{item.get('tag')}> {item.get('text', '')}")
    return "\n".join(lines)


def page_fingerprint(url: str, summary: str) -> str:
    """Short hash identifying what the page looked like after an action."""
    return hashlib.sha256(f"{url}\n{summary}".encode("utf-8")).hexdigest()[:16]


async def summarize_dom(page: Page, max_elements: int = MAX_ELEMENTS) -> str:
    """Summarize visible controls and short texts; empty string if the page is unreadable."""
    try:
        items = await page.evaluate(_SUMMARY_SCRIPT, max_elements)
    except Exception as e:
        logger.debug("DOM summary failed: %s", e)
        return ""
    logger.debug("DOM summary: %d items", len(items))
    return format_summary(items)
