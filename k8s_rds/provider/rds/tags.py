"""
Tag computation for RDS resources. Tags come from three places, in order:
resource annotations, resource labels, and the explicit "tags" spec string.
"""

# Standard
from typing import Dict, List
import re

# First Party
import alog

# Local
from ... import constants

log = alog.use_channel("RDSTG")

_RESERVED_KEY_EXPR = re.compile(constants.RESERVED_TAG_KEY_PATTERN)


def _fits(key: str, value: str) -> bool:
    return (
        len(key) <= constants.MAX_TAG_LENGTH and len(value) <= constants.MAX_TAG_LENGTH
    )


def metadata_tags(
    annotations: Dict[str, str],
    labels: Dict[str, str],
) -> List[Dict[str, str]]:
    """Convert annotations and labels into RDS tags. Oversized keys or values
    are dropped, as are annotations with a reserved (kube*) key.
    """
    tags = []
    for key, value in (annotations or {}).items():
        value = "" if value is None else str(value)
        if not _fits(key, value) or _RESERVED_KEY_EXPR.match(key):
            log.warning("Not adding annotation to tags: %s", key)
            continue
        tags.append({"Key": key, "Value": value})

    for key, value in (labels or {}).items():
        value = "" if value is None else str(value)
        if not _fits(key, value):
            log.warning("Not adding label to tags: %s", key)
            continue
        tags.append({"Key": key, "Value": value})
    return tags


def parse_tags(tags: str) -> List[Dict[str, str]]:
    """Parse a "key=value,key2=value2" string. Whitespace around keys and
    values is trimmed. Entries without "=" or with an empty key are skipped.
    """
    parsed = []
    for entry in (tags or "").split(","):
        if not entry.strip():
            continue
        key, sep, value = entry.partition("=")
        key = key.strip()
        if not sep or not key:
            log.warning("Skipping malformed tag entry [%s]", entry)
            continue
        parsed.append({"Key": key, "Value": value.strip()})
    return parsed


def build_tags(
    annotations: Dict[str, str],
    labels: Dict[str, str],
    tags: str,
) -> List[Dict[str, str]]:
    """The full tag list for a resource"""
    return metadata_tags(annotations, labels) + parse_tags(tags)
