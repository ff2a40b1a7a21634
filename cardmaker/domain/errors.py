# cardmaker/domain/errors.py


class CardError(Exception):
    """Base class for every error raised by the card core."""


class RenderError(CardError):
    """Fatal rasterization failure; no partial output is produced."""


class DrawingSurfaceError(RenderError):
    pass


class NoVisibleContentError(RenderError):
    pass


class StaleExportError(CardError):
    """A newer export was requested for the same session before this one finished."""

    def __init__(self, request_id: int, latest_id: int):
        super().__init__(f"Export #{request_id} superseded by #{latest_id}")
        self.request_id = request_id
        self.latest_id = latest_id


class LayerNotFoundError(CardError, KeyError):
    def __init__(self, layer_id: str):
        super().__init__(layer_id)
        self.layer_id = layer_id

    def __str__(self) -> str:
        return f"Layer '{self.layer_id}' not found"


class StoreError(CardError):
    """The persistence collaborator failed."""


class PublishError(CardError):
    pass


class CatalogError(CardError):
    pass


class AssetLoadError(CardError):
    pass
