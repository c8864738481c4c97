"""
Placeholder interpolation for workflow messages and tasks
"""
import math
from typing import Any, Callable, Dict, Optional

from .conditions import CallData


def _minutes(call: CallData) -> str:
    seconds = call.get('callDurationSeconds') or 0
    return str(int(math.floor(seconds / 60 + 0.5)))


PLACEHOLDERS: Dict[str, Callable[[CallData], str]] = {
    'caller_name': lambda call: call.get('callerName') or 'Unknown',
    'caller_phone': lambda call: call.get('callerPhone') or '',
    'call_topic': lambda call: call.get('callTopic') or '',
    'call_summary': lambda call: call.get('callSummary') or '',
    'call_rating': lambda call: str(call.get('callQualityRating') or 0),
    'follow_up_reason': lambda call: call.get('followUpReason') or '',
    'call_duration': _minutes,
    'call_sentiment': lambda call: call.get('callSentiment') or 'neutral',
}


def interpolate(text: Optional[Any], call: CallData) -> str:
    """Replace every {{placeholder}} with the call's value; unknown placeholders are left as-is"""
    if not text:
        return ''
    rendered = str(text)
    for name, render in PLACEHOLDERS.items():
        token = '{{' + name + '}}'
        if token in rendered:
            rendered = rendered.replace(token, render(call))
    return rendered
