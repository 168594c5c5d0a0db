import os

from starlette.staticfiles import StaticFiles

from blogapi.config import settings


class CachedStaticFiles(StaticFiles):
    """
    StaticFiles that marks every file as immutable for ``max_age`` seconds.

    Asset URLs are expected to change whenever their content does, so
    browsers may keep them without revalidating.  A missing directory is
    served as an empty one: every lookup is a 404.
    """

    def __init__(self, *args, max_age: int = settings.STATIC_MAX_AGE, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.max_age = max_age

    async def check_config(self) -> None:
        if self.directory is not None and not os.path.isdir(self.directory):
            return
        await super().check_config()

    def file_response(self, *args, **kwargs):
        response = super().file_response(*args, **kwargs)
        response.headers["Cache-Control"] = f"public, max-age={self.max_age}, immutable"
        return response
