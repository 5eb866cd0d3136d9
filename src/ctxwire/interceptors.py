from ctxwire._internal.interceptors import ComponentInterceptor, Dependency

__all__ = ["ComponentInterceptor", "Dependency"]
