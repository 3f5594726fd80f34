from typing import TypedDict, Union

# xmltodict gives plain text for bare elements and a dict with "#text"
# once the element carries attributes
TextNode = Union[str, dict, None]

# DIDL-Lite keys such as "class" or "@id" are not identifiers
DidlContainer = TypedDict(
    "DidlContainer",
    {
        "@id": str,
        "@parentID": str,
        "@childCount": str,
        "@restricted": str,
        "title": TextNode,
        "class": TextNode,
        "albumArtURI": list[TextNode],
    },
    total=False,
)


DidlItem = TypedDict(
    "DidlItem",
    {
        "@id": str,
        "@parentID": str,
        "@restricted": str,
        "title": TextNode,
        "class": TextNode,
        "res": list[TextNode],
        "albumArtURI": list[TextNode],
    },
    total=False,
)


class DidlLite(TypedDict, total=False):
    container: list[DidlContainer]
    item: list[DidlItem]


DidlRoot = TypedDict("DidlRoot", {"DIDL-Lite": DidlLite})
