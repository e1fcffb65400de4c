"""Scripts evaluated in the page by workflow steps."""

FORM_PRESENCE_SCRIPT = """
() => {
    const form = document.querySelector('form');
    const inputs = Array.from(document.querySelectorAll(
        'input:not([type="hidden"]):not([type="submit"]):not([type="button"]), select, textarea'
    )).filter(el => {
        const r = el.getBoundingClientRect();
        return (r.width > 0 && r.height > 0) || el.type === 'file';
    });
    let formType = null;
    if (form) {
        const text = (form.innerText || '').toLowerCase();
        if (form.querySelector('input[type="password"]')) formType = 'login';
        else if (form.querySelector('input[type="search"]') && inputs.length <= 2) formType = 'search';
        else if (text.includes('apply') || form.querySelector('input[type="file"]')) formType = 'application';
        else formType = 'generic';
    }
    return {
        hasForm: form !== null,
        formType: formType,
        inputCount: inputs.length,
        url: location.href
    };
}
"""

FILL_FIELD_SCRIPT = """
(field) => {
    function find() {
        if (field.selector) {
            const el = document.querySelector(field.selector);
            if (el) return el;
        }
        const byName = document.querySelector(`[name="${CSS.escape(field.name)}"]`);
        if (byName) return byName;
        const byId = document.getElementById(field.name);
        if (byId) return byId;
        const wanted = field.name.toLowerCase();
        for (const label of document.querySelectorAll('label')) {
            if (label.textContent.trim().toLowerCase() === wanted) {
                if (label.control) return label.control;
            }
        }
        return document.querySelector(
            `[aria-label="${CSS.escape(field.name)}"], [placeholder="${CSS.escape(field.name)}"]`
        );
    }

    const el = find();
    if (!el) return {filled: false, reason: 'element not found'};
    if (el.disabled || el.readOnly) return {filled: false, reason: 'element is read-only'};

    if (el.tagName === 'SELECT') {
        const wanted = String(field.value).trim().toLowerCase();
        const option = Array.from(el.options).find(o => o.text.trim().toLowerCase() === wanted)
            || Array.from(el.options).find(o => o.value.trim().toLowerCase() === wanted)
            || Array.from(el.options).find(o => o.text.trim().toLowerCase().includes(wanted));
        if (!option) return {filled: false, reason: 'option not found'};
        el.value = option.value;
    } else {
        const proto = el.tagName === 'TEXTAREA'
            ? window.HTMLTextAreaElement.prototype
            : window.HTMLInputElement.prototype;
        const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
        el.focus();
        setter.call(el, field.value);
    }
    el.dispatchEvent(new Event('input', {bubbles: true}));
    el.dispatchEvent(new Event('change', {bubbles: true}));
    el.blur();
    return {filled: true, reason: null};
}
"""

SUBMIT_SCRIPT = """
() => {
    const candidates = Array.from(document.querySelectorAll(
        'button[type="submit"], input[type="submit"], button, [role="button"]'
    ));
    const words = ['submit application', 'submit', 'apply now', 'apply', 'send application', 'send'];
    const avoid = ['save', 'cancel', 'back', 'upload', 'add another', 'sign in', 'log in'];
    const textOf = el => (el.innerText || el.value || el.getAttribute('aria-label') || '').trim().toLowerCase();
    const visible = el => {
        const r = el.getBoundingClientRect();
        return r.width > 0 && r.height > 0 && !el.disabled;
    };
    for (const word of words) {
        const match = candidates.find(el => {
            const t = textOf(el);
            return visible(el) && t.includes(word) && !avoid.some(a => t.includes(a));
        });
        if (match) {
            match.click();
            return {clicked: true, text: textOf(match)};
        }
    }
    const form = document.querySelector('form');
    if (form && typeof form.requestSubmit === 'function') {
        form.requestSubmit();
        return {clicked: true, text: 'form.requestSubmit'};
    }
    return {clicked: false, text: null};
}
"""

PAGE_SNAPSHOT_SCRIPT = """
() => ({
    url: location.href,
    text: (document.body ? document.body.innerText : '').slice(0, 20000).toLowerCase(),
    inputCount: document.querySelectorAll(
        'input:not([type="hidden"]), select, textarea'
    ).length
})
"""

COLLECT_LINKS_SCRIPT = """
() => {
    const seen = new Set();
    const links = [];
    document.querySelectorAll('a[href]').forEach(a => {
        const href = a.href;
        if (!href || !href.startsWith('http') || seen.has(href)) return;
        seen.add(href);
        links.push({
            href: href,
            text: (a.innerText || a.getAttribute('aria-label') || a.title || '').trim().slice(0, 200)
        });
    });
    return links;
}
"""

NEXT_LINK_SCRIPT = """
(selector) => {
    let el = null;
    if (selector.startsWith('text:')) {
        const wanted = selector.slice(5).trim().toLowerCase();
        el = Array.from(document.querySelectorAll('a[href], button, [role="link"]'))
            .find(a => (a.innerText || a.getAttribute('aria-label') || '').trim().toLowerCase() === wanted);
    } else {
        try {
            el = document.querySelector(selector);
        } catch (e) {
            return null;
        }
    }
    if (!el) return null;
    if (el.tagName === 'LINK') return el.href || null;
    if (el.getAttribute('aria-disabled') === 'true' || el.disabled) return null;
    if (el.classList && el.classList.contains('disabled')) return null;
    const anchor = el.closest('a[href]') || el.querySelector('a[href]');
    return anchor ? anchor.href : null;
}
"""
