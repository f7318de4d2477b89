import re
from typing import List

# ==================== AI RESPONSE FORMATTER ====================
# Turns the markdown-ish prose the AI gateway returns into display blocks
# the client can render without its own markdown parser.

_NUMBERED_ITEM = re.compile(r'^(\d+)[.)]\s*(.+)')
_BULLET_PREFIX = re.compile(r'^[•\-*]\s*')
_BOLD_RUN = re.compile(r'(\*\*[^*]+\*\*)')
_HEADING_PREFIX = re.compile(r'^#+\s*')


def format_inline(text: str) -> List[dict]:
    """Split a line into plain and **bold** segments"""
    segments = []
    for part in _BOLD_RUN.split(text):
        if not part:
            continue
        if part.startswith('**') and part.endswith('**') and len(part) > 4:
            segments.append({'text': part[2:-2], 'bold': True})
        else:
            segments.append({'text': part, 'bold': False})
    return segments


def format_ai_response(content: str) -> List[dict]:
    """
    Parse AI text into a list of blocks.

    Block types: heading, strong, list (style 'ordered' or 'bullet'),
    paragraph and spacer. Consecutive list lines of the same style are
    grouped into one list block.
    """
    if not content or not isinstance(content, str):
        return []

    blocks = []
    current_items = []
    list_style = None

    def flush_list():
        nonlocal current_items, list_style
        if current_items and list_style:
            blocks.append({
                'type': 'list',
                'style': list_style,
                'items': [format_inline(item) for item in current_items],
            })
        current_items = []
        list_style = None

    for line in content.split('\n'):
        trimmed = line.strip()

        if trimmed == '':
            flush_list()
            blocks.append({'type': 'spacer'})
            continue

        if trimmed.startswith('##') or trimmed.startswith('# '):
            flush_list()
            blocks.append({'type': 'heading', 'text': _HEADING_PREFIX.sub('', trimmed)})
            continue

        # A whole line in bold reads as a section title
        if len(trimmed) > 4 and trimmed.startswith('**') and trimmed.endswith('**'):
            flush_list()
            blocks.append({'type': 'strong', 'text': trimmed[2:-2]})
            continue

        numbered = _NUMBERED_ITEM.match(trimmed)
        if numbered:
            if list_style != 'ordered':
                flush_list()
                list_style = 'ordered'
            current_items.append(numbered.group(2))
            continue

        # '**' opens inline bold, not a bullet
        if trimmed[0] in '•-' or (trimmed[0] == '*' and not trimmed.startswith('**')):
            if list_style != 'bullet':
                flush_list()
                list_style = 'bullet'
            current_items.append(_BULLET_PREFIX.sub('', trimmed))
            continue

        flush_list()
        blocks.append({'type': 'paragraph', 'segments': format_inline(trimmed)})

    flush_list()
    return blocks
