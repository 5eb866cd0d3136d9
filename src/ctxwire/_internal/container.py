from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from dataclasses import replace
from types import TracebackType
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, TypeVar, cast, overload, runtime_checkable

from ctxwire._internal.bindings import Api, Binding, BindingKind, Cardinality, ScopeKind
from ctxwire._internal.descriptors import component_spec, group_interfaces, parse_reference
from ctxwire._internal.factories import is_variant_factory
from ctxwire._internal.injection import plan_injection
from ctxwire._internal.injector import DependencyInjector
from ctxwire._internal.qualifiers import EMPTY_CONTEXT, Qualifier, QualifierType
from ctxwire._internal.scope import Scope
from ctxwire._internal.type_checks import qualified_name
from ctxwire.exceptions import CtxWireBindingError
from ctxwire.lock_mode import LockMode
from ctxwire.validators import BindingValidator

if TYPE_CHECKING:
    from typing_extensions import Self

T = TypeVar("T")
InjectableF = TypeVar("InjectableF", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


@runtime_checkable
class PackageBindings(Protocol):
    """A batch of registrations contributed by one package or module.

    Examples:
        .. code-block:: python

            class StorageBindings:
                def bind_components(self, registry: Container) -> None:
                    registry.bind(FileStorage, Storage)
                    registry.bind_factory(ConnectionFactory, Connection)


            container = Container(bindings=[StorageBindings()])

    """

    def bind_components(self, registry: Container) -> None:
        """Register the package's components into ``registry``."""


BindingsSource: TypeAlias = "PackageBindings | Callable[[Container], Any]"


class Container:
    """Register components and resolve them with contextual configuration.

    A container is a handle over one node of the scope graph. Components are
    bound to capability types (apis) as classes, instances or factories, and
    resolved on demand: constructor dependencies are resolved recursively,
    qualifier tags declared along the reference chain are composed into a
    context, and every component receives the part of that context it
    accepts. Singleton components are cached once per accepted context.

    Child containers (``make_child``) see the bindings of their ancestors and
    reuse the components cached there. Domain containers (``make_domain``)
    additionally rebuild every component referenced from within them, so each
    domain gets its own copies.

    Examples:
        .. code-block:: python

            container = Container()
            container.bind(PostgresRepository, Repository)
            container.bind_instance(Settings(dsn="postgresql://localhost/app"))

            repository = container.resolve(Repository)

    """

    _scope: Scope
    _injector: DependencyInjector
    _validator: BindingValidator
    _registration_depth: int

    def __init__(
        self,
        bindings: Iterable[BindingsSource] | BindingsSource | None = None,
        *,
        observer: Any | None = None,
        lock_mode: LockMode = LockMode.THREAD,
        name: str | None = None,
    ) -> None:
        """Create a root container.

        Args:
            bindings: Binding batches installed right away, see :meth:`install`.
            observer: Optional observer receiving resolution events.
            lock_mode: Locking strategy of component caches. Child and domain
                containers inherit it.
            name: Name used in log records and error messages.

        Examples:
            .. code-block:: python

                container = Container(bindings=[StorageBindings()], name="app")

                single_threaded = Container(lock_mode=LockMode.NONE)

        """
        self._setup(
            Scope(kind=ScopeKind.ROOT, lock_mode=lock_mode, name=name or "root"),
            DependencyInjector(handle_factory=type(self)._from_scope, observer=observer),
        )
        if bindings is not None:
            self.install(bindings)

    @classmethod
    def _from_scope(cls, scope: Scope, injector: DependencyInjector) -> Self:
        container = cls.__new__(cls)
        container._setup(scope, injector)
        return container

    def _setup(self, scope: Scope, injector: DependencyInjector) -> None:
        self._scope = scope
        self._injector = injector
        self._validator = BindingValidator()
        self._registration_depth = 0

    def __repr__(self) -> str:
        return f"Container({self._scope.name!r}, {self._scope.kind.value})"

    @property
    def name(self) -> str:
        return self._scope.name

    @property
    def kind(self) -> ScopeKind:
        return self._scope.kind

    @property
    def closed(self) -> bool:
        return self._scope.closed

    # region Registration Methods
    def bind(
        self,
        implementation: type[Any],
        *apis: Api,
        stateful: bool | None = None,
        primary: bool | None = None,
        accepts: Iterable[QualifierType] | None = None,
        tags: Iterable[Qualifier] | None = None,
        groups: Iterable[Api] = (),
        ignores: Iterable[QualifierType] | None = None,
    ) -> None:
        """Bind a class to one or more apis.

        Keyword arguments left as ``None`` fall back to the ``@component``
        metadata of the class. Group membership always includes every
        ``@component_group`` interface in the class's MRO.

        Args:
            implementation: Concrete class constructed on resolution.
            *apis: Capability types the class satisfies. Defaults to the
                ``@component(api=...)`` metadata, then to the class itself.
            stateful: Build a new instance for every reference instead of
                caching one per accepted context.
            primary: Registration precedence. A fallback (``primary=False``)
                binding is replaced by a later primary one.
            accepts: Qualifier types the class receives in its
                ``ComponentContext``.
            tags: Qualifier tags contributed to the context of the class's
                dependencies.
            groups: Additional component groups the class is a member of.
            ignores: Qualifier types removed from the context passed on to the
                class's dependencies.

        Raises:
            CtxWireBindingError: If the class cannot be instantiated, an api is
                ``None``, or an api is already bound with equal precedence.

        Examples:
            .. code-block:: python

                container.bind(S3Storage, Storage, accepts=[Region], tags=[Tier("cold")])

        """
        self._validator.validate_implementation(implementation)
        spec = component_spec(implementation)
        resolved_apis = apis or spec.apis or (implementation,)
        resolved_accepts = spec.accepts if accepts is None else tuple(accepts)
        resolved_tags = spec.tags if tags is None else tuple(tags)
        resolved_ignores = spec.ignores if ignores is None else tuple(ignores)
        self._validator.validate_apis(resolved_apis, target=implementation)
        self._validator.validate_qualifier_types(resolved_accepts, target=implementation)
        self._validator.validate_qualifier_types(resolved_ignores, target=implementation)
        self._validator.validate_tags(resolved_tags, target=implementation)

        stateful_value = spec.stateful if stateful is None else stateful
        binding = Binding(
            api=resolved_apis[0],
            kind=BindingKind.CLASS,
            target=implementation,
            cardinality=Cardinality.STATEFUL if stateful_value else Cardinality.SINGLETON,
            primary=spec.primary if primary is None else primary,
            accepts=resolved_accepts,
            ignores=resolved_ignores,
            tags=resolved_tags,
            groups=_unique((*group_interfaces(implementation), *spec.groups, *groups)),
        )
        with self._registration():
            for api in resolved_apis:
                self._scope.register(replace(binding, api=api))

    def bind_instance(
        self,
        instance: Any,
        *apis: Api,
        primary: bool = True,
        groups: Iterable[Api] = (),
    ) -> None:
        """Bind a pre-built object to one or more apis.

        Args:
            instance: Object returned on resolution.
            *apis: Capability types the object satisfies. Defaults to its type.
            primary: Registration precedence.
            groups: Additional component groups the object is a member of.

        Raises:
            CtxWireBindingError: If ``instance`` or an api is ``None``, or an
                api is already bound with equal precedence.

        Examples:
            .. code-block:: python

                container.bind_instance(Settings(dsn="sqlite://"))
                container.bind_instance(clock, Clock, primary=False)

        """
        self._validator.validate_instance(instance)
        resolved_apis = apis or (type(instance),)
        self._validator.validate_apis(resolved_apis, target=instance)
        binding = Binding(
            api=resolved_apis[0],
            kind=BindingKind.INSTANCE,
            target=instance,
            primary=primary,
            groups=_unique((*group_interfaces(type(instance)), *groups)),
        )
        with self._registration():
            for api in resolved_apis:
                self._scope.register(replace(binding, api=api))

    def bind_factory(
        self,
        factory: Any,
        *apis: Api,
        accepts: Iterable[QualifierType] | None = None,
        stateful: bool | None = None,
        primary: bool | None = None,
    ) -> None:
        """Bind a component factory or variant factory to one or more apis.

        A factory class is constructed once per owning container with its own
        dependencies injected; a factory instance is used as is. A variant
        factory wraps the class or instance binding of the same api,
        whichever is registered first.

        Args:
            factory: ``ComponentFactory`` or ``VariantFactory`` class or instance.
            *apis: Capability types the factory produces. Defaults to the
                ``@component(api=...)`` metadata of the factory class.
            accepts: Qualifier types of the reference context handed to the
                factory. Defaults to the ``@component(context=...)`` metadata.
            stateful: Ask the factory for every reference instead of caching
                one product per accepted context.
            primary: Registration precedence.

        Raises:
            CtxWireBindingError: If ``factory`` is not a factory, no api is
                given, or an api is already bound with equal precedence.

        Examples:
            .. code-block:: python

                container.bind_factory(ConnectionFactory, Connection, accepts=[Database])

        """
        self._validator.validate_factory(factory)
        factory_type = factory if isinstance(factory, type) else type(factory)
        spec = component_spec(factory_type)
        resolved_apis = apis or spec.apis
        if not resolved_apis:
            msg = f"Factory {factory!r} needs at least one api to produce."
            raise CtxWireBindingError(msg)
        resolved_accepts = spec.accepts if accepts is None else tuple(accepts)
        self._validator.validate_apis(resolved_apis, target=factory)
        self._validator.validate_qualifier_types(resolved_accepts, target=factory)

        stateful_value = spec.stateful if stateful is None else stateful
        binding = Binding(
            api=resolved_apis[0],
            kind=BindingKind.FACTORY,
            target=factory,
            cardinality=Cardinality.STATEFUL if stateful_value else Cardinality.SINGLETON,
            primary=spec.primary if primary is None else primary,
            accepts=resolved_accepts,
            variant=is_variant_factory(factory),
        )
        with self._registration():
            for api in resolved_apis:
                self._scope.register(replace(binding, api=api))

    def install(self, *bindings: Iterable[BindingsSource] | BindingsSource) -> None:
        """Install binding batches into this container.

        Each batch is a ``PackageBindings`` object or a callable receiving the
        container. Installation is transactional: when any registration fails,
        every registration made by this call is rolled back.

        Raises:
            CtxWireBindingError: If a batch contains an invalid registration.

        """
        with self._registration():
            for source in _flatten_bindings(bindings):
                if isinstance(source, PackageBindings):
                    source.bind_components(self)
                elif callable(source):
                    source(self)
                else:
                    msg = f"Bindings source {source!r} must implement bind_components() or be callable."
                    raise CtxWireBindingError(msg)

    @contextmanager
    def _registration(self) -> Generator[None, None, None]:
        if self._registration_depth:
            self._registration_depth += 1
            try:
                yield
            finally:
                self._registration_depth -= 1
            return

        snapshot = self._scope.registry.snapshot()
        self._registration_depth = 1
        try:
            yield
        except CtxWireBindingError:
            self._scope.registry.restore(snapshot)
            raise
        finally:
            self._registration_depth = 0

    # endregion Registration Methods

    # region Resolution

    @overload
    def resolve(self, api: type[T], *, tags: Iterable[Qualifier] = (), optional: bool = False) -> T: ...

    @overload
    def resolve(self, api: Any, *, tags: Iterable[Qualifier] = (), optional: bool = False) -> Any: ...

    def resolve(self, api: Any, *, tags: Iterable[Qualifier] = (), optional: bool = False) -> Any:
        """Resolve the component bound to ``api``.

        ``api`` may carry ``Annotated`` metadata exactly like a constructor
        parameter: qualifier tags, ``Maybe``, ``Group`` and ``Deferred``.

        Args:
            api: Capability type to resolve.
            tags: Qualifier tags forming the context of the request.
            optional: Return ``None`` instead of raising when nothing is bound.

        Returns:
            The resolved component.

        Raises:
            CtxWireResolutionError: If the api is not bound, a constructor is
                ambiguous, or a factory refuses a mandatory request.
            CtxWireCircularReferencesError: If the graph contains a cycle
                through concrete types.
            CtxWireInstantiationError: If a constructor or factory raised.

        Examples:
            .. code-block:: python

                storage = container.resolve(Storage, tags=[Region("eu")])
                cache = container.resolve(Maybe[Cache])

        """
        reference = parse_reference(qualified_name(api), api)
        extra_tags = tuple(tags)
        if extra_tags or optional:
            self._validator.validate_tags(extra_tags, target=api)
            reference = replace(
                reference,
                tags=(*extra_tags, *reference.tags),
                optional=reference.optional or optional,
            )
        _, value = self._injector.resolve_reference(self._scope, reference)
        return value

    def resolve_group(
        self,
        api: type[T],
        *,
        tags: Iterable[Qualifier] = (),
        optional: bool = False,
    ) -> tuple[T, ...] | None:
        """Resolve every member of the component group ``api``, in group order.

        Raises:
            CtxWireResolutionError: If the group has no members and ``optional``
                is false.

        """
        context = EMPTY_CONTEXT.expand(tuple(tags))
        return self._injector.resolve_group(self._scope, api, context=context, optional=optional)

    def instantiate(
        self,
        cls: type[T],
        bindings: Iterable[BindingsSource] | BindingsSource | None = None,
    ) -> T:
        """Construct ``cls`` with injected dependencies without binding or caching it.

        Args:
            cls: Class to construct; it need not be bound.
            bindings: Optional batches installed into a child container the
                class is constructed from.

        """
        if bindings is None:
            return self._injector.instantiate(self._scope, cls)
        child = self.make_child(bindings)
        return child._injector.instantiate(child._scope, cls)  # noqa: SLF001

    def initialize(self, instance: T) -> T:
        """Inject the ``Injected[...]`` attributes of ``instance`` that are still unset."""
        return self._injector.initialize(self._scope, instance)

    def invoke(self, function: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``function`` resolving every parameter the caller did not supply.

        Examples:
            .. code-block:: python

                def report(storage: Storage, title: str) -> str: ...


                container.invoke(report, title="daily")

        """
        return self._injector.invoke(self._scope, function, args, kwargs)

    @overload
    def inject(self, func: InjectableF) -> InjectableF: ...

    @overload
    def inject(self, func: None = None) -> Callable[[InjectableF], InjectableF]: ...

    def inject(self, func: InjectableF | None = None) -> InjectableF | Callable[[InjectableF], InjectableF]:
        """Decorate a callable to resolve its ``Injected`` parameters on every call.

        The wrapper hides injected parameters from the public signature.
        Callers may still pass any injected argument explicitly.

        Examples:
            .. code-block:: python

                @container.inject
                def handle(storage: Injected[Storage], key: str) -> bytes:
                    return storage.read(key)


                handle("reports/today.csv")

        """

        def decorator(callable_obj: InjectableF) -> InjectableF:
            return self._inject_callable(callable_obj)

        if func is None:
            return decorator
        if not callable(func):
            msg = "inject() parameter 'func' must be callable."
            raise CtxWireBindingError(msg)
        return decorator(func)

    def _inject_callable(self, callable_obj: InjectableF) -> InjectableF:
        plan = plan_injection(callable_obj)
        signature = plan.signature

        @functools.wraps(callable_obj)
        def _injected(*args: Any, **kwargs: Any) -> Any:
            bound_arguments = signature.bind_partial(*args, **kwargs)
            for reference in plan.references:
                if reference.name in bound_arguments.arguments:
                    continue
                found, value = self._injector.resolve_reference(self._scope, reference)
                if found:
                    bound_arguments.arguments[reference.name] = value
            return callable_obj(*bound_arguments.args, **bound_arguments.kwargs)

        _injected.__signature__ = plan.public_signature  # type: ignore[attr-defined]
        return cast("InjectableF", _injected)

    def traverse(self, api: Any) -> None:
        """Walk the dependency graph of ``api`` reporting events to the observer.

        Nothing is constructed. Use it on a view returned by :meth:`observed`.
        """
        self._injector.traverse(self._scope, api)

    def traverse_group(self, api: Any) -> None:
        """Walk the dependency graph of every member of group ``api`` without constructing."""
        self._injector.traverse_group(self._scope, api)

    # endregion Resolution

    # region Scopes

    def make_child(self, bindings: Iterable[BindingsSource] | BindingsSource | None = None) -> Self:
        """Create a child container.

        The child sees every binding of this container and its ancestors.
        Components owned by ancestors are still built and cached there.
        """
        return self._make_scope(ScopeKind.CHILD, bindings)

    def make_domain(self, bindings: Iterable[BindingsSource] | BindingsSource | None = None) -> Self:
        """Create a domain container.

        Components bound in ancestors are rebuilt and cached inside the domain
        the first time they are referenced from within it.
        """
        return self._make_scope(ScopeKind.DOMAIN, bindings)

    def _make_scope(
        self,
        kind: ScopeKind,
        bindings: Iterable[BindingsSource] | BindingsSource | None,
    ) -> Self:
        self._scope.check_open()
        scope = Scope(
            kind=kind,
            parent=self._scope,
            lock_mode=self._scope.lock_mode,
        )
        logger.debug("Created %s container '%s' under '%s'", kind.value, scope.name, self._scope.name)
        container = cast("Self", self._injector.handle(scope))
        if bindings is not None:
            container.install(bindings)
        return container

    def observed(self, observer: Any) -> Self:
        """Return a view of this container reporting resolution events to ``observer``.

        The view shares bindings and cached components with this container.
        Containers created from the view report to the same observer.
        """
        injector = DependencyInjector(handle_factory=type(self)._from_scope, observer=observer)
        return cast("Self", injector.handle(self._scope))

    def on_close(self, callback: Callable[[], Any]) -> None:
        """Register a termination callback run when this container closes.

        Callbacks run in reverse registration order.
        """
        self._scope.on_close(callback)

    def close(self) -> None:
        """Close the container.

        Termination callbacks run in reverse order and cached components are
        dropped. Ancestors stay open; descendants become unusable. Closing
        twice is a no-op.
        """
        self._scope.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    # endregion Scopes


def _unique(values: Iterable[Any]) -> tuple[Any, ...]:
    return tuple(dict.fromkeys(values))


def _flatten_bindings(bindings: tuple[Any, ...]) -> list[Any]:
    flattened: list[Any] = []
    for item in bindings:
        if isinstance(item, PackageBindings) or callable(item):
            flattened.append(item)
        elif isinstance(item, Iterable) and not isinstance(item, str | bytes):
            flattened.extend(_flatten_bindings(tuple(item)))
        else:
            flattened.append(item)
    return flattened


__all__ = ["BindingsSource", "Container", "PackageBindings"]
