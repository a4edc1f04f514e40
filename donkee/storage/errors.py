class StorageError(Exception):
    """A durable write or read failed."""


class DuplicatePostError(StorageError):
    """A post with the same platform id is already stored."""

    def __init__(self, platform_id: str):
        super().__init__(f"Post {platform_id} already stored")
        self.platform_id = platform_id
