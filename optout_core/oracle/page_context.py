#!/usr/bin/env python3
from typing import Any, Dict, List

INDEX_ATTR = "data-optout-idx"


async def extract_page_context(page, text_chars: int = 6000) -> Dict[str, Any]:
    """Title, URL, visible text, forms and buttons of the current page."""
    js_code = f"""
        () => {{
            const safeText = (el) => {{ try {{ return (el && el.innerText) ? String(el.innerText) : ''; }} catch(e){{ return ''; }} }};
            const bodyText = (() => {{ try {{ return (document.body && document.body.innerText) ? document.body.innerText : ''; }} catch(e){{ return ''; }} }})();
            const labelFor = (e) => {{
                try {{
                    if (e.labels && e.labels.length) return safeText(e.labels[0]).trim() || undefined;
                    return e.getAttribute('aria-label') || e.getAttribute('placeholder') || undefined;
                }} catch(err) {{ return undefined; }}
            }};
            return {{
                title: document.title,
                url: window.location.href,
                text: ((bodyText||'').substring(0, {int(text_chars)}).trim() || undefined),
                forms: Array.from(document.forms || []).map(f => ({{
                    id: (f && f.id) || undefined,
                    action: (f && f.action) || undefined,
                    fields: Array.from((f && f.elements) || []).map(e => ({{
                        name: (e && e.name) || undefined,
                        type: (e && e.type) || undefined,
                        label: labelFor(e),
                        value: (e && e.type !== 'password' && e.value) || '',
                        checked: (e && (e.type === 'checkbox' || e.type === 'radio')) ? !!e.checked : undefined,
                        visible: !!(e && e.offsetParent !== null),
                        required: !!(e && (e.required || e.getAttribute('aria-required') === 'true'))
                    }}))
                }})),
                buttons: Array.from(document.querySelectorAll('button, input[type="submit"], [role=button]') || [])
                    .slice(0, 30)
                    .map(b => ({{ text: (safeText(b).trim() || b.value || undefined) }})),
                headings: Array.from(document.querySelectorAll('h1, h2, h3') || [])
                    .filter(h => !!safeText(h).trim())
                    .slice(0, 20)
                    .map(h => safeText(h).trim())
            }};
        }}
        """
    return await page.evaluate(js_code)


async def snapshot_interactive(page, limit: int = 80) -> List[Dict[str, Any]]:
    """
    Visible interactive elements, each tagged with a numeric index attribute
    so an action plan can address it as [data-optout-idx="N"].
    """
    return await page.evaluate(
        """
        ([attr, limit]) => {
          const sel = ["a[href]","button","input","textarea","select","[role=button]","[role=checkbox]","[role=radio]"].join(",");
          const out = [];
          let idx = 0;
          for (const el of document.querySelectorAll(sel)) {
            if (out.length >= limit) break;
            if (el.type === 'hidden') continue;
            const rect = el.getBoundingClientRect();
            if (!(rect.width > 0 && rect.height > 0) && el.type !== 'checkbox' && el.type !== 'radio') continue;
            el.setAttribute(attr, String(idx));
            let label;
            try {
              label = (el.labels && el.labels.length) ? (el.labels[0].innerText || '').trim() : undefined;
            } catch(e) { label = undefined; }
            out.push({
              idx: idx,
              tag: el.tagName.toLowerCase(),
              type: el.getAttribute("type") || undefined,
              name: el.getAttribute("name") || undefined,
              label: label || el.getAttribute("aria-label") || el.getAttribute("placeholder") || undefined,
              text: (() => { try { return (el.innerText || "").trim().substring(0, 80) || undefined; } catch(e) { return undefined; } })(),
              value: (el.tagName === 'INPUT' || el.tagName === 'TEXTAREA') ? (el.value || '') : undefined,
              checked: (el.type === 'checkbox' || el.type === 'radio') ? !!el.checked : undefined,
              options: el.tagName === 'SELECT' ? Array.from(el.options).slice(0, 60).map(o => o.text.trim()) : undefined
            });
            idx += 1;
          }
          return out;
        }
        """,
        [INDEX_ATTR, int(limit)],
    )


def selector_for(idx: Any) -> str:
    return f'[{INDEX_ATTR}="{int(idx)}"]'
