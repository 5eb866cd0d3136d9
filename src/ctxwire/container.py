from ctxwire._internal.container import BindingsSource, Container, PackageBindings

__all__ = ["BindingsSource", "Container", "PackageBindings"]
