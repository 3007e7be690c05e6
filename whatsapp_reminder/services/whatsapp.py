"""Click-to-chat links, see https://faq.whatsapp.com/iphone/how-to-link-to-whatsapp-from-a-different-app/

    https://wa.me/15551234567?text=I%27m%20interested%20in%20your%20car%20for%20sale
    https://wa.me/15551234567
    https://wa.me/?text=urlencodedtext
"""

from __future__ import annotations

import re
from urllib.parse import quote

BASE_URL = "https://wa.me/"

# Characters a URL path segment may carry unescaped besides the unreserved set.
_PATH_SAFE = "$&+,:;=@"
_WHITESPACE_RE = re.compile(r"\s+")


def remove_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub("", value)


def create_whatsapp_link(phone_number: str, message_text: str) -> str:
    link = BASE_URL + quote(remove_whitespace(phone_number), safe=_PATH_SAFE)
    if message_text:
        link += "?text=" + quote(message_text, safe=_PATH_SAFE)
    return link
