"""File-based JSON storage for the reference structured store.

Data layout:
  data/
    rooms.json       Room catalog (seeded with 40 rooms on first access)
    tasks.json       Task list
    messages.json    Chat messages for the current day
    archives.json    One archive per date: {date, summary, data, createdAt}
    contents/        Versioned blobs served by /contents/{path}

Every file holds the camelCase wire form the client sends and expects.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    collection_path,
    contents_dir,
    data_dir,
    init_storage,
    read_json,
    write_json,
)

from .rooms import (  # noqa: F401
    list_rooms,
    save_rooms,
    update_guest_status,
    update_room_status,
)

from .tasks import (  # noqa: F401
    add_task,
    complete_task,
    list_tasks,
    reopen_task,
    save_tasks,
)

from .messages import (  # noqa: F401
    add_message,
    list_messages,
    save_messages,
    update_message,
)

from .archives import (  # noqa: F401
    add_archive,
    list_archives,
    save_archives,
)

from .files import (  # noqa: F401
    BlobConflict,
    BlobError,
    BlobShaRequired,
    InvalidBlobPath,
    blob_sha,
    get_blob,
    is_directory,
    list_blobs,
    put_blob,
)
