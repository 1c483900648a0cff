from .adapter_factory import PublishAdapterFactory

__all__ = ["PublishAdapterFactory"]
