from ctxwire._internal.descriptors import ComponentSpec, component, component_group, constructor

__all__ = ["ComponentSpec", "component", "component_group", "constructor"]
