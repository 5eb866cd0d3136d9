from ctxwire._internal.factories import ComponentFactory, VariantFactory

__all__ = ["ComponentFactory", "VariantFactory"]
