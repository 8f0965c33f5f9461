"""CRUD operations package.

- image.py: Image records and per-owner listings
- share.py: Share tokens
- annotation.py: Annotation circles
- chat.py: Chat messages on annotations
"""

# Image operations
from annotator.app.db.crud.image import (
    create_image,
    get_image_by_id,
    get_image_owner,
    list_images_with_annotation_counts,
)

# Share operations
from annotator.app.db.crud.share import (
    SqlShareLookup,
    create_share,
    get_share_for_image,
    share_token_matches,
)

# Annotation operations
from annotator.app.db.crud.annotation import (
    create_annotation,
    get_annotation_owner,
    list_annotations_for_image,
)

# Chat operations
from annotator.app.db.crud.chat import (
    create_chat_message,
    list_chat_messages,
)

__all__ = [
    # Image operations
    "create_image",
    "get_image_by_id",
    "get_image_owner",
    "list_images_with_annotation_counts",
    # Share operations
    "SqlShareLookup",
    "create_share",
    "get_share_for_image",
    "share_token_matches",
    # Annotation operations
    "create_annotation",
    "get_annotation_owner",
    "list_annotations_for_image",
    # Chat operations
    "create_chat_message",
    "list_chat_messages",
]
