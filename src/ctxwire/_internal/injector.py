from __future__ import annotations

import functools
import inspect
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, get_type_hints

from ctxwire._internal.bindings import Api, Binding, BindingKind, ScopeKind
from ctxwire._internal.cache import CacheKey
from ctxwire._internal.descriptors import (
    MISSING,
    Reference,
    ReferenceKind,
    component_spec,
    describe_class,
    has_instance_value,
    injected_fields,
    parse_reference,
)
from ctxwire._internal.groups import GroupOrder, compute_order
from ctxwire._internal.integrations.pydantic_settings import is_pydantic_settings_subclass
from ctxwire._internal.interceptors import ComponentInterceptor, InterceptorChain, select_interceptors
from ctxwire._internal.observers import ObserverHub
from ctxwire._internal.path import PathElement, ReferenceChainTracker, ResolutionFrame
from ctxwire._internal.placeholders import DeferredReference, make_placeholder
from ctxwire._internal.qualifiers import (
    EMPTY_CONTEXT,
    ComponentContext,
    ContextDefinition,
    Qualifier,
    QualifierType,
)
from ctxwire._internal.scope import Scope
from ctxwire._internal.type_checks import is_capability_interface, qualified_name
from ctxwire.exceptions import (
    CtxWireCircularReferencesError,
    CtxWireError,
    CtxWireInstantiationError,
    CtxWireResolutionError,
)

logger = logging.getLogger(__name__)

HandleFactory = Callable[[Scope, "DependencyInjector"], Any]

_SETTINGS_LOCK = threading.Lock()
_intercepting: ContextVar[bool] = ContextVar("ctxwire_intercepting", default=False)
_VARIADIC_KINDS = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


class DependencyInjector:
    """Resolve references against a scope graph.

    One injector serves every container handle that shares an observer. It
    keeps no resolution state of its own: the reference chain lives in a
    ``ContextVar`` and cached components live in the scopes.
    """

    def __init__(self, *, handle_factory: HandleFactory, observer: Any | None = None) -> None:
        self.hub = ObserverHub(observer)
        self.tracker = ReferenceChainTracker()
        self._handle_factory = handle_factory

    def handle(self, scope: Scope) -> Any:
        """Return a container handle for ``scope`` that resolves through this injector."""
        return self._handle_factory(scope, self)

    # -- entry points ------------------------------------------------------

    def resolve(
        self,
        scope: Scope,
        api: Api,
        *,
        context: ContextDefinition = EMPTY_CONTEXT,
        optional: bool = False,
    ) -> Any:
        return self._resolve_api(scope, api, context, optional=optional, static_type=api)

    def resolve_group(
        self,
        scope: Scope,
        api: Api,
        *,
        context: ContextDefinition = EMPTY_CONTEXT,
        optional: bool = False,
    ) -> tuple[Any, ...] | None:
        return self._resolve_group(scope, api, context, optional=optional)

    def resolve_reference(self, scope: Scope, reference: Reference) -> tuple[bool, Any]:
        """Resolve a reference declared outside of any component, such as an injected parameter."""
        return self._inject_reference(
            scope,
            declaring=None,
            reference=reference,
            component_context=ComponentContext(),
            downstream=EMPTY_CONTEXT,
            type_tags=(),
        )

    def instantiate(self, scope: Scope, cls: type, *, context: ContextDefinition = EMPTY_CONTEXT) -> Any:
        """Build ``cls`` with injected dependencies without binding or caching it."""
        scope.check_open()
        spec = component_spec(cls)
        frame = ResolutionFrame(api=cls, bound_type=cls, identity=(cls, scope.id), context=context)
        active = self.tracker.find_active(frame.identity)
        if active is not None:
            return self._circular(active, frame, cls)
        with self.tracker.push(frame):
            self.hub.resolved(self.tracker.path(), cls)
            instance = self._build(
                scope,
                cls,
                context,
                accepts=spec.accepts,
                tags=spec.tags,
                ignores=spec.ignores,
            )
            frame.resolve(instance)
        return instance

    def initialize(self, scope: Scope, instance: Any) -> Any:
        """Inject ``Injected[...]`` fields of an existing object that are not set yet."""
        scope.check_open()
        cls = type(instance)
        spec = component_spec(cls)
        frame = ResolutionFrame(api=cls, bound_type=cls, identity=(cls, scope.id, id(instance)))
        with self.tracker.push(frame):
            self._inject_fields(
                scope,
                cls,
                instance,
                injected_fields(cls),
                component_context=EMPTY_CONTEXT.accept(spec.accepts),
                downstream=EMPTY_CONTEXT.expand(spec.tags, ignore=spec.ignores),
                type_tags=spec.tags,
            )
            frame.resolve(instance)
        return instance

    def invoke(self, scope: Scope, function: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        """Call ``function`` with every parameter not supplied by the caller injected."""
        scope.check_open()
        signature = inspect.signature(function)
        bound_arguments = signature.bind_partial(*args, **kwargs)
        owner = getattr(function, "__self__", None)
        declaring = None if owner is None else owner if inspect.isclass(owner) else type(owner)
        try:
            hints = get_type_hints(function, include_extras=True)
        except (AttributeError, NameError, TypeError):
            hints = {}
        for parameter in signature.parameters.values():
            if parameter.name in bound_arguments.arguments or parameter.kind in _VARIADIC_KINDS:
                continue
            annotation = hints.get(parameter.name, parameter.annotation)
            if annotation is inspect.Parameter.empty or isinstance(annotation, str):
                if parameter.default is not inspect.Parameter.empty:
                    continue
                msg = (
                    f"Unable to infer dependency for required parameter '{parameter.name}' "
                    f"of '{qualified_name(function)}'. Add a type annotation."
                )
                raise CtxWireResolutionError(msg)
            reference = parse_reference(
                parameter.name,
                annotation,
                default=MISSING if parameter.default is inspect.Parameter.empty else parameter.default,
                parameter_kind=parameter.kind,
            )
            found, value = self._inject_reference(
                scope,
                declaring=declaring,
                reference=reference,
                component_context=ComponentContext(),
                downstream=EMPTY_CONTEXT,
                type_tags=(),
            )
            if found:
                bound_arguments.arguments[reference.name] = value
        return function(*bound_arguments.args, **bound_arguments.kwargs)

    def traverse(self, scope: Scope, api: Api) -> None:
        """Walk the dependency graph of ``api`` reporting events without instantiating."""
        scope.check_open()
        self._walk_api(scope, api, EMPTY_CONTEXT, optional=False, static_type=api)

    def traverse_group(self, scope: Scope, api: Api) -> None:
        """Walk the dependency graph of every member of group ``api`` without instantiating."""
        scope.check_open()
        self._walk_group(scope, api, EMPTY_CONTEXT, optional=False)

    # -- resolution --------------------------------------------------------

    def _resolve_api(
        self,
        scope: Scope,
        api: Api,
        context: ContextDefinition,
        *,
        optional: bool,
        static_type: Any,
    ) -> Any:
        scope.check_open()
        found = scope.lookup(api) or self._bind_settings(scope, api)
        if found is None:
            if optional:
                return None
            msg = f"No binding found for '{qualified_name(api)}'"
            raise CtxWireResolutionError(msg, path=self._path_to(api, api, context))
        binding, owner = found
        return self._resolve_binding(
            scope,
            binding,
            owner,
            api,
            context,
            optional=optional,
            static_type=static_type,
        )

    def _resolve_binding(
        self,
        scope: Scope,
        binding: Binding,
        owner: Scope,
        api: Api,
        context: ContextDefinition,
        *,
        optional: bool,
        static_type: Any,
    ) -> Any:
        if binding.kind is BindingKind.INSTANCE:
            self.hub.resolved(self._path_to(api, binding.bound_type, context), binding.bound_type)
            return binding.target
        target = scope.resolution_scope(owner)
        if binding.kind is BindingKind.FACTORY:
            return self._resolve_product(
                target,
                binding,
                api,
                context,
                optional=optional,
                static_type=static_type,
            )
        return self._resolve_component(target, binding, api, context, static_type=static_type)

    def _resolve_component(
        self,
        scope: Scope,
        binding: Binding,
        api: Api,
        context: ContextDefinition,
        *,
        static_type: Any,
    ) -> Any:
        bound_type = binding.bound_type
        frame = ResolutionFrame(
            api=api,
            bound_type=bound_type,
            identity=(bound_type, scope.id),
            context=context,
        )
        active = self.tracker.find_active(frame.identity)
        if active is not None:
            return self._circular(active, frame, static_type)

        with self.tracker.push(frame):
            self.hub.resolved(self.tracker.path(), bound_type)
            if binding.stateful:
                instance = self._construct(scope, binding, context)
            else:
                accepted = context.accept(self._effective_acceptance(scope, binding))
                key = CacheKey(bound_type, accepted.key, scope.id)
                instance = scope.cache.get_or_create(
                    key,
                    lambda: self._construct(scope, binding, context),
                )
            frame.resolve(instance)
        return instance

    def _construct(self, scope: Scope, binding: Binding, context: ContextDefinition) -> Any:
        return self._build(
            scope,
            binding.bound_type,
            context,
            accepts=binding.accepts,
            tags=binding.tags,
            ignores=binding.ignores,
        )

    def _build(
        self,
        scope: Scope,
        cls: type,
        received: ContextDefinition,
        *,
        accepts: tuple[QualifierType, ...],
        tags: tuple[Qualifier, ...],
        ignores: tuple[QualifierType, ...],
    ) -> Any:
        if issubclass(cls, ComponentInterceptor) and not _intercepting.get():
            with _interception_suspended():
                return self._build(scope, cls, received, accepts=accepts, tags=tags, ignores=ignores)

        descriptor = describe_class(cls)
        constructor = descriptor.injection_constructor
        if constructor is None:
            raise CtxWireResolutionError(descriptor.ambiguity_reason or "", path=self.tracker.path())

        component_context = received.accept(accepts)
        downstream = received.advance().expand(tags, ignore=ignores)
        self.tracker.constructing(cls)
        arguments: dict[str, Any] = {}
        for reference in constructor.references:
            found, value = self._inject_reference(
                scope,
                declaring=cls,
                reference=reference,
                component_context=component_context,
                downstream=downstream,
                type_tags=tags,
            )
            if found:
                arguments[reference.name] = value

        path = self.tracker.path()
        try:
            instance = constructor.invoke(cls, arguments)
        except CtxWireError:
            raise
        except Exception as exc:
            msg = f"Constructor '{constructor.name}' of '{qualified_name(cls)}' raised {exc!r}"
            raise CtxWireInstantiationError(msg, cause=exc, path=path) from exc

        self._inject_fields(
            scope,
            cls,
            instance,
            descriptor.fields,
            component_context=component_context,
            downstream=downstream,
            type_tags=tags,
        )
        self.hub.instantiated(path, cls, instance)
        return instance

    def _inject_fields(
        self,
        scope: Scope,
        cls: type,
        instance: Any,
        fields: tuple[Reference, ...],
        *,
        component_context: ComponentContext,
        downstream: ContextDefinition,
        type_tags: tuple[Qualifier, ...],
    ) -> None:
        for reference in fields:
            if has_instance_value(instance, reference.name):
                continue
            found, value = self._inject_reference(
                scope,
                declaring=cls,
                reference=reference,
                component_context=component_context,
                downstream=downstream,
                type_tags=type_tags,
            )
            if found:
                setattr(instance, reference.name, value)

    def _inject_reference(
        self,
        scope: Scope,
        *,
        declaring: type | None,
        reference: Reference,
        component_context: ComponentContext,
        downstream: ContextDefinition,
        type_tags: tuple[Qualifier, ...],
    ) -> tuple[bool, Any]:
        if reference.kind is ReferenceKind.CONTEXT:
            return True, component_context
        if reference.kind is ReferenceKind.CONTAINER:
            return True, self.handle(scope)

        context = downstream.expand(reference.tags)
        if declaring is not None:
            self.hub.descending(declaring, reference.api, type_tags, reference.tags)
        try:
            value = self._resolve_reference(scope, reference, context)
            if value is not None and reference.kind is not ReferenceKind.DEFERRED:
                value = self._intercept(scope, reference, context, value)
        finally:
            if declaring is not None:
                self.hub.ascending(declaring, reference.api)

        if value is None and reference.has_default:
            return False, None
        return True, value

    def _resolve_reference(self, scope: Scope, reference: Reference, context: ContextDefinition) -> Any:
        if reference.kind is ReferenceKind.GROUP:
            return self._resolve_group(scope, reference.api, context, optional=reference.optional)
        if reference.kind is ReferenceKind.DEFERRED:
            return DeferredReference(
                reference.api,
                functools.partial(
                    self._resolve_api,
                    scope,
                    reference.api,
                    context,
                    optional=reference.optional,
                    static_type=reference.api,
                ),
            )
        return self._resolve_api(
            scope,
            reference.api,
            context,
            optional=reference.optional or reference.has_default,
            static_type=reference.api,
        )

    def _circular(self, active: ResolutionFrame, frame: ResolutionFrame, static_type: Any) -> Any:
        path = self.tracker.path_with(frame)
        if is_capability_interface(static_type):
            logger.debug("Circular reference to %s satisfied with a placeholder", qualified_name(static_type))
            self.hub.circular(path)
            return make_placeholder(static_type, active, path)
        msg = f"Circular reference to '{qualified_name(frame.bound_type)}'"
        raise CtxWireCircularReferencesError(msg, path=path)

    # -- interception ------------------------------------------------------

    def _intercept(self, scope: Scope, reference: Reference, context: ContextDefinition, value: Any) -> Any:
        selected = select_interceptors(self._interceptors(scope), context)
        if not selected:
            return value
        api = reference.api
        chain = InterceptorChain(api, value)
        for interceptor, accepted in selected:
            try:
                dependency = interceptor.intercept(api, accepted, chain.head)
            except CtxWireError:
                raise
            except Exception as exc:
                msg = f"Interceptor '{qualified_name(type(interceptor))}' raised {exc!r} for '{qualified_name(api)}'"
                raise CtxWireInstantiationError(msg, cause=exc, path=self.tracker.path()) from exc
            if dependency is None:
                if reference.optional or reference.has_default:
                    logger.debug("Interceptor %s dropped %s", qualified_name(type(interceptor)), qualified_name(api))
                    return None
                msg = f"Interceptor '{qualified_name(type(interceptor))}' refused '{qualified_name(api)}'"
                raise CtxWireResolutionError(msg, path=self._path_to(api, api, context))
            chain.head = dependency

        logger.debug(
            "Interceptors for %s {%s}: %s",
            qualified_name(api),
            context,
            ", ".join(qualified_name(type(interceptor)) for interceptor, _ in selected),
        )
        try:
            return chain.release()
        except CtxWireError:
            raise
        except Exception as exc:
            msg = f"Intercepted dependency '{qualified_name(api)}' raised {exc!r}"
            raise CtxWireInstantiationError(msg, cause=exc, path=self.tracker.path()) from exc

    def _interceptors(self, scope: Scope) -> tuple[ComponentInterceptor, ...]:
        if _intercepting.get() or not scope.lookup_group(ComponentInterceptor):
            return ()
        with _interception_suspended():
            return self._resolve_group(scope, ComponentInterceptor, EMPTY_CONTEXT, optional=True) or ()

    # -- factories ---------------------------------------------------------

    def _resolve_product(
        self,
        scope: Scope,
        binding: Binding,
        api: Api,
        context: ContextDefinition,
        *,
        optional: bool,
        static_type: Any,
    ) -> Any:
        factory_type = binding.bound_type
        frame = ResolutionFrame(
            api=api,
            bound_type=factory_type,
            identity=(factory_type, api, scope.id),
            context=context,
        )
        active = self.tracker.find_active(frame.identity)
        if active is not None:
            return self._circular(active, frame, static_type)

        with self.tracker.push(frame):
            self.hub.resolved(self.tracker.path(), factory_type)
            if binding.stateful:
                product = self._produce(scope, binding, api, context)
            else:
                accepted = context.accept(self._effective_acceptance(scope, binding))
                key = CacheKey((factory_type, api), accepted.key, scope.id)
                product = scope.cache.get_or_create(
                    key,
                    lambda: self._produce(scope, binding, api, context),
                )
            if product is None and not optional:
                msg = f"Factory '{qualified_name(factory_type)}' refused to produce '{qualified_name(api)}'"
                raise CtxWireResolutionError(msg, path=self.tracker.path())
            frame.resolve(product)
        return product

    def _produce(self, scope: Scope, binding: Binding, api: Api, context: ContextDefinition) -> Any:
        factory_type = binding.bound_type
        factory = self._factory(scope, binding)
        factory_context = context.accept(binding.accepts)
        self.tracker.constructing((factory_type, api))
        child = Scope(
            kind=ScopeKind.CHILD,
            parent=scope,
            lock_mode=scope.lock_mode,
            name=f"{scope.name}/{factory_type.__name__}",
        )
        handle = self.handle(child)
        path = self.tracker.path()
        try:
            if binding.variant:
                returned = factory.new_component(handle, factory_context)
            else:
                product = factory.create(factory_context, handle)
        except CtxWireError:
            raise
        except Exception as exc:
            msg = f"Factory '{qualified_name(factory_type)}' raised {exc!r} for '{qualified_name(api)}'"
            raise CtxWireInstantiationError(msg, cause=exc, path=path) from exc

        if binding.variant:
            if returned is None:
                return None
            return self._resolve_variant(returned, binding, api, context)

        if product is not None:
            self.hub.instantiated(path, type(product), product)
        return product

    def _resolve_variant(self, returned: Any, binding: Binding, api: Api, context: ContextDefinition) -> Any:
        variant_scope = getattr(returned, "_scope", None)
        if not isinstance(variant_scope, Scope):
            msg = (
                f"Variant factory '{qualified_name(binding.bound_type)}' returned {returned!r}, "
                "expected a container"
            )
            raise CtxWireResolutionError(msg, path=self.tracker.path())
        found = variant_scope.lookup(api)
        if found is not None and found[0] is not binding:
            dependency, owner = found
            return self._resolve_binding(
                variant_scope,
                dependency,
                owner,
                api,
                context,
                optional=False,
                static_type=api,
            )

        delegate = binding.delegate
        if delegate is None:
            msg = (
                f"Variant factory '{qualified_name(binding.bound_type)}' has no class or instance "
                f"binding of '{qualified_name(api)}' to wrap"
            )
            raise CtxWireResolutionError(msg, path=self.tracker.path())
        if delegate.kind is BindingKind.INSTANCE:
            return delegate.target
        return self._resolve_component(variant_scope, delegate, api, context, static_type=api)

    def _factory(self, scope: Scope, binding: Binding) -> Any:
        if not inspect.isclass(binding.target):
            return binding.target
        factory_type = binding.target
        return scope.cache.get_or_create(
            CacheKey(factory_type, "", scope.id),
            lambda: self._build_factory(scope, factory_type),
        )

    def _build_factory(self, scope: Scope, factory_type: type) -> Any:
        frame = ResolutionFrame(api=factory_type, bound_type=factory_type, identity=(factory_type, scope.id))
        active = self.tracker.find_active(frame.identity)
        if active is not None:
            return self._circular(active, frame, factory_type)
        spec = component_spec(factory_type)
        with self.tracker.push(frame):
            instance = self._build(
                scope,
                factory_type,
                EMPTY_CONTEXT,
                accepts=(),
                tags=spec.tags,
                ignores=spec.ignores,
            )
            frame.resolve(instance)
        return instance

    # -- groups ------------------------------------------------------------

    def _resolve_group(
        self,
        scope: Scope,
        api: Api,
        context: ContextDefinition,
        *,
        optional: bool,
    ) -> tuple[Any, ...] | None:
        scope.check_open()
        members = scope.lookup_group(api)
        if not members:
            if optional:
                return None
            msg = f"No members registered for component group '{qualified_name(api)}'"
            raise CtxWireResolutionError(msg, path=self._path_to(api, api, context))

        frame = ResolutionFrame(
            api=api,
            bound_type=api,
            identity=("group", api, scope.id),
            context=context,
            group=True,
        )
        if self.tracker.find_active(frame.identity) is not None:
            msg = f"Component group '{qualified_name(api)}' is required by one of its own members"
            raise CtxWireCircularReferencesError(msg, path=self.tracker.path_with(frame))

        member_keys = tuple(binding.member_key for binding, _ in members)
        by_key = {binding.member_key: (binding, owner) for binding, owner in members}
        with self.tracker.push(frame):
            known = scope.group_orders.get(api)
            if known is not None and known.matches(member_keys):
                instances = {
                    member_key: self._resolve_member(scope, by_key[member_key], api, context)
                    for member_key in known.order
                }
                order = known.order
            else:
                instances = {}
                discovered: dict[Any, list[Any]] = {}
                candidates = frozenset(member_keys)
                for member_key in member_keys:
                    with self.tracker.collect(candidates) as collector:
                        instances[member_key] = self._resolve_member(
                            scope,
                            by_key[member_key],
                            api,
                            context,
                        )
                    discovered[member_key] = [
                        other for other in collector.discovered if other != member_key
                    ]
                order = scope.store_group_order(
                    api,
                    GroupOrder(members=member_keys, order=compute_order(member_keys, discovered)),
                ).order
            result = tuple(instances[member_key] for member_key in order)
            frame.resolve(result)
        return result

    def _resolve_member(
        self,
        scope: Scope,
        member: tuple[Binding, Scope],
        api: Api,
        context: ContextDefinition,
    ) -> Any:
        binding, owner = member
        return self._resolve_binding(
            scope,
            binding,
            owner,
            api,
            context,
            optional=False,
            static_type=api,
        )

    # -- acceptance --------------------------------------------------------

    def _effective_acceptance(self, scope: Scope, binding: Binding) -> tuple[QualifierType, ...]:
        """Return the qualifier types that can influence the component built for ``binding``.

        These are the binding's own accepted types plus, transitively, those of
        every binding its dependencies resolve to. Cache keys filter the
        received context through this set so one instance is never shared
        between contexts that any transitive dependency distinguishes.
        """
        generation = scope.root.generation
        memo = scope.acceptance.get(binding)
        if memo is not None and memo[0] == generation:
            return memo[1]
        accepted: dict[QualifierType, None] = {}
        self._collect_acceptance(scope, binding, accepted, set())
        result = tuple(accepted)
        scope.acceptance[binding] = (generation, result)
        return result

    def _collect_acceptance(
        self,
        scope: Scope,
        binding: Binding,
        accepted: dict[QualifierType, None],
        visiting: set[tuple[int, int]],
    ) -> None:
        marker = (id(binding), scope.id)
        if marker in visiting:
            return
        visiting.add(marker)
        accepted.update(dict.fromkeys(binding.accepts))

        if binding.kind is BindingKind.INSTANCE:
            return
        if binding.kind is BindingKind.FACTORY:
            if binding.delegate is not None:
                self._collect_acceptance(scope, binding.delegate, accepted, visiting)
            return

        for reference in describe_class(binding.bound_type).all_references:
            if reference.is_static:
                continue
            if reference.kind is ReferenceKind.GROUP:
                for member, owner in scope.lookup_group(reference.api):
                    self._collect_acceptance(scope.resolution_scope(owner), member, accepted, visiting)
                continue
            found = scope.lookup(reference.api)
            if found is None:
                continue
            dependency, owner = found
            self._collect_acceptance(scope.resolution_scope(owner), dependency, accepted, visiting)

    # -- traversal ---------------------------------------------------------

    def _walk_api(
        self,
        scope: Scope,
        api: Api,
        context: ContextDefinition,
        *,
        optional: bool,
        static_type: Any,
    ) -> None:
        found = scope.lookup(api)
        if found is None:
            if optional or is_pydantic_settings_subclass(api):
                return
            msg = f"No binding found for '{qualified_name(api)}'"
            raise CtxWireResolutionError(msg, path=self._path_to(api, api, context))
        binding, owner = found
        self._walk_binding(scope, binding, owner, api, context, static_type=static_type)

    def _walk_binding(
        self,
        scope: Scope,
        binding: Binding,
        owner: Scope,
        api: Api,
        context: ContextDefinition,
        *,
        static_type: Any,
    ) -> None:
        bound_type = binding.bound_type
        if binding.kind is BindingKind.INSTANCE:
            self.hub.resolved(self._path_to(api, bound_type, context), bound_type)
            return

        target = scope.resolution_scope(owner)
        if binding.kind is BindingKind.FACTORY:
            identity: tuple[Any, ...] = (bound_type, api, target.id)
        else:
            identity = (bound_type, target.id)
        frame = ResolutionFrame(api=api, bound_type=bound_type, identity=identity, context=context)
        if self.tracker.find_active(identity) is not None:
            path = self.tracker.path_with(frame)
            if is_capability_interface(static_type):
                self.hub.circular(path)
                return
            msg = f"Circular reference to '{qualified_name(bound_type)}'"
            raise CtxWireCircularReferencesError(msg, path=path)

        with self.tracker.push(frame):
            self.hub.resolved(self.tracker.path(), bound_type)
            walked = binding.delegate if binding.kind is BindingKind.FACTORY else binding
            if walked is not None and walked.kind is BindingKind.CLASS:
                self._walk_class(target, walked, context)
            frame.resolve(None)

    def _walk_class(self, scope: Scope, binding: Binding, received: ContextDefinition) -> None:
        cls = binding.bound_type
        descriptor = describe_class(cls)
        constructor = descriptor.injection_constructor
        if constructor is None:
            raise CtxWireResolutionError(descriptor.ambiguity_reason or "", path=self.tracker.path())

        downstream = received.advance().expand(binding.tags, ignore=binding.ignores)
        for reference in (*constructor.references, *descriptor.fields):
            if reference.is_static:
                continue
            context = downstream.expand(reference.tags)
            self.hub.descending(cls, reference.api, binding.tags, reference.tags)
            try:
                if reference.kind is ReferenceKind.GROUP:
                    self._walk_group(scope, reference.api, context, optional=reference.optional)
                elif reference.kind is ReferenceKind.INSTANCE:
                    self._walk_api(
                        scope,
                        reference.api,
                        context,
                        optional=reference.optional or reference.has_default,
                        static_type=reference.api,
                    )
            finally:
                self.hub.ascending(cls, reference.api)

    def _walk_group(self, scope: Scope, api: Api, context: ContextDefinition, *, optional: bool) -> None:
        members = scope.lookup_group(api)
        if not members:
            if optional:
                return
            msg = f"No members registered for component group '{qualified_name(api)}'"
            raise CtxWireResolutionError(msg, path=self._path_to(api, api, context))

        frame = ResolutionFrame(
            api=api,
            bound_type=api,
            identity=("group", api, scope.id),
            context=context,
            group=True,
        )
        if self.tracker.find_active(frame.identity) is not None:
            msg = f"Component group '{qualified_name(api)}' is required by one of its own members"
            raise CtxWireCircularReferencesError(msg, path=self.tracker.path_with(frame))
        with self.tracker.push(frame):
            for binding, owner in members:
                self._walk_binding(scope, binding, owner, api, context, static_type=api)
            frame.resolve(None)

    # -- helpers -----------------------------------------------------------

    def _path_to(self, api: Api, bound_type: Any, context: ContextDefinition) -> Any:
        return self.tracker.path().append(PathElement(api=api, type=bound_type, context=context))

    def _bind_settings(self, scope: Scope, api: Api) -> tuple[Binding, Scope] | None:
        if not is_pydantic_settings_subclass(api):
            return None
        root = scope.root
        with _SETTINGS_LOCK:
            found = scope.lookup(api)
            if found is not None:
                return found
            try:
                settings = api()
            except Exception as exc:
                msg = f"Settings '{qualified_name(api)}' could not be loaded: {exc!r}"
                raise CtxWireInstantiationError(msg, cause=exc, path=self._path_to(api, api, EMPTY_CONTEXT)) from exc
            logger.debug("Binding settings %s in container '%s'", qualified_name(api), root.name)
            root.register(Binding(api=api, kind=BindingKind.INSTANCE, target=settings))
        return scope.lookup(api)


@contextmanager
def _interception_suspended() -> Iterator[None]:
    token = _intercepting.set(True)
    try:
        yield
    finally:
        _intercepting.reset(token)


__all__ = ["DependencyInjector"]
