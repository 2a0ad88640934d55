"""
RPC client and server through which the host runtime delivers provider requests.

davmount runs as a separate process next to the host runtime that owns the virtual
file system mounts. The host forwards every file system request (read directory, open
file, write file, ...) to the provider service in davmount and waits for its answer.
That boundary has the following requirements:

* Many requests are outstanding at the same time
    * Viewers read files in many small pieces and file managers list several
    directories at once, so the server handles calls with a pool of worker threads.
* Low overhead per call
    * Every read of a file is a call, so an HTTP based protocol would add noticeable
    latency on top of the WebDAV round trip.
* Faithful errors
    * The host maps errors to its own error codes, so a NotFoundError raised by the
    provider has to arrive as a NotFoundError rather than a generic RPC failure.
* Shared secret authentication
    * Only the host runtime should be able to drive mounts, even if the endpoint is
    reachable by other local users.

ZeroMQ takes care of the message framing and the ROUTER/DEALER fan-out to workers, and
MessagePack gives compact serialization of bytes, dataclasses and timestamps without
a schema compiler.
"""

from abc import ABC
import builtins
from dataclasses import is_dataclass
from datetime import datetime
from enum import auto, Enum
import json
import logging
import threading
import time
import typing
from typing import Any, Callable, Dict, IO, List, NoReturn, Optional, Tuple

import msgpack
import zmq

import davmount.errors as errors
from davmount.logger import log, summarize


class Encoding:
    """
    Serialization and deserialization of objects using JSON or MessagePack.

    MessagePack is used for the RPC messages and JSON for the persisted mount records.
    Besides the builtin types, registered dataclasses, datetimes and exceptions survive
    a round trip.
    """

    def __init__(self, *dataclasses: type):
        """Initialize a (de)serializer with support for the given dataclass types."""
        self._dataclasses: Dict[str, type] = {}

        for dataclass in dataclasses:
            self.register_dataclasses(dataclass)

    def register_dataclasses(self, seed_type: type) -> None:
        """
        Register all dataclass types used within the specified type.

        This includes the class itself, the types of its fields, nested dataclasses,
        and the contents of container types like List and Optional.
        """
        for dataclass in self._discover_dataclasses(seed_type):
            self._dataclasses[dataclass.__qualname__] = dataclass

    def pack(self, obj: Any) -> bytes:
        """Serialize an object using MessagePack."""
        return msgpack.packb(obj, default=self.serialize_obj)

    def unpack(self, data: bytes) -> Any:
        """Deserialize an object using MessagePack."""
        return msgpack.unpackb(data, object_hook=self.deserialize_obj)

    def dump_json(self, obj: Any, fp: IO[str]) -> None:
        """Serialize an object to JSON."""
        json.dump(obj, fp, default=self.serialize_obj)

    def load_json(self, fp: IO[str]) -> Any:
        """Deserialize an object from JSON."""
        return json.load(fp, object_hook=self.deserialize_obj)

    def serialize_obj(self, obj: Any) -> Any:
        """Turn a dataclass or object into a serialization friendly representation."""
        if isinstance(obj, BaseException):
            return self._serialize_exception(obj)
        elif isinstance(obj, datetime):
            return {"__datetime__": obj.isoformat()}
        elif obj.__class__.__qualname__ in self._dataclasses:
            return self._serialize_dataclass(obj)
        else:
            raise ValueError(f"unserializable object {obj}")

    def deserialize_obj(self, obj: Any) -> Any:
        """Reconstruct a dataclass, datetime or exception from its representation."""
        if isinstance(obj, dict) and "__exception__" in obj:
            return self._deserialize_exception(obj)
        elif isinstance(obj, dict) and "__datetime__" in obj:
            return datetime.fromisoformat(obj["__datetime__"])
        elif isinstance(obj, dict) and "__data__" in obj:
            return self._deserialize_dataclass(obj)
        else:
            return obj

    #
    # Exception serialization
    #

    @staticmethod
    def _serialize_exception(exc: BaseException) -> Dict:
        """Turn an exception into a serialization friendly dict."""
        return {"__exception__": {"name": exc.__class__.__qualname__, "args": exc.args}}

    @staticmethod
    def _deserialize_exception(obj: Dict) -> BaseException:
        """
        Reconstruct an exception from its serialized representation.

        Builtin exceptions (like OSError) and davmount's own exceptions are
        reconstructed faithfully, anything else becomes a generic Exception with the
        original arguments.
        """
        name = obj["__exception__"]["name"]
        args = obj["__exception__"]["args"]

        for namespace in (builtins, errors):
            exc_type = getattr(namespace, name, None)

            if isinstance(exc_type, type) and issubclass(exc_type, BaseException):
                try:
                    return exc_type(*args)
                except TypeError:
                    break

        return Exception(*args)

    #
    # Data class serialization
    #

    @classmethod
    def _serialize_dataclass(cls, obj: Any) -> Dict:
        """Turn a dataclass into a serialization friendly dict."""
        return {"__data__": {"type": obj.__class__.__qualname__, "data": obj.__dict__}}

    def _deserialize_dataclass(self, obj: Dict) -> Any:
        """
        Reconstruct a dataclass from its serialized representation.

        Only previously registered dataclass types can be deserialized.
        """
        type_name = obj["__data__"]["type"]
        type_data = obj["__data__"]["data"]

        if type_name not in self._dataclasses:
            raise TypeError(f"unknown dataclass '{type_name}'")

        try:
            return self._dataclasses[type_name](**type_data)
        except Exception as e:
            raise TypeError(f"failed to deserialize {type_name}: {e}")

    @staticmethod
    def _discover_dataclasses(*seed_types: type) -> List[type]:
        """Find all dataclass types used with the specified types."""
        candidates = set(seed_types)
        explored = set()
        dataclasses = set()

        while len(candidates) > 0:
            candidate = candidates.pop()

            if candidate in explored:
                continue

            explored.add(candidate)

            if is_dataclass(candidate):
                dataclasses.add(candidate)

                for subtype in typing.get_type_hints(candidate).values():
                    candidates.add(subtype)
            elif hasattr(candidate, "__origin__"):
                # Types nested in constructs like Optional[T] and Dict[K, V]
                for subtype in getattr(candidate, "__args__", ()):
                    candidates.add(subtype)

        return list(dataclasses)


class ReturnType(Enum):
    """Type of result for an RPC call."""

    NORMAL = auto()
    EXCEPTION = auto()
    TOKEN_ERROR = auto()


class InvalidTokenError(RuntimeError):
    """Exception raised when an RPC call is made with a wrong authentication token."""


class Base(ABC):
    """Shared logic between RPC client and server implementation."""

    def __init__(self, service_type: type):
        """Initialize RPC (de)serialization to support the specified service class."""
        self._encoding = Encoding(*self._discover_function_types(service_type))

    @staticmethod
    def _exposed_names(service_type: type) -> List[str]:
        """Return the names of the public methods of a service class."""
        return [
            name
            for name in dir(service_type)
            if not name.startswith("_") and callable(getattr(service_type, name))
        ]

    @classmethod
    def _discover_function_types(cls, service_type: type) -> List[type]:
        """Discover all types used as parameters or return values in the service."""
        function_types: List[type] = []

        for name in cls._exposed_names(service_type):
            hints = typing.get_type_hints(getattr(service_type, name))
            function_types += hints.values()

        return function_types


class Server(Base):
    """
    RPC server to expose the public methods of a service class instance.

    Example:
    ```
    class Foo:
        def bar(self, a, b):
            return a + b

    server = rpc.Server(Foo(), worker_count=4)
    server.serve("tcp://127.0.0.1:7878")
    ```
    """

    def __init__(
        self, service: Any, token: Optional[str] = None, worker_count: int = 1
    ):
        """
        Instantiate an RPC server for the given service class instance.

        Only methods without a leading underscore are exposed. If a token is specified
        then clients need to be initialized with that same token to be allowed to make
        calls. Incoming calls are distributed across the specified number of worker
        threads.
        """
        super().__init__(service.__class__)

        self.context = zmq.Context()

        self.service = service
        self.token = token
        self.worker_count = worker_count

        self._exposed = set(self._exposed_names(service.__class__))

    def serve(self, endpoint: str) -> NoReturn:
        """
        Start listening and handling calls for clients on the specified endpoint.

        The endpoint should have the format of endpoint in zmq_bind
        (http://api.zeromq.org/2-1:zmq-bind), for example "tcp://127.0.0.1:7878".
        """
        socket = self.context.socket(zmq.ROUTER)
        socket.bind(endpoint)

        workers_socket = self.context.socket(zmq.DEALER)
        workers_socket.bind(f"inproc://{id(self)}")

        for _ in range(self.worker_count):
            t = threading.Thread(target=self._run_worker, daemon=True)
            t.start()

        log.info(f"serving {self.service.__class__.__name__} on {endpoint}")

        zmq.proxy(socket, workers_socket)

        assert False, "unreachable"

    def _run_worker(self) -> NoReturn:
        """Request/response loop to handle calls for a single worker thread."""
        socket = self.context.socket(zmq.REP)
        socket.connect(f"inproc://{id(self)}")

        while True:
            token, function, *args = self._encoding.unpack(socket.recv())

            if token != self.token:
                socket.send(self._encoding.pack((ReturnType.TOKEN_ERROR.value, None)))
                continue

            try:
                ret = self._invoke(function, args)
                socket.send(self._encoding.pack((ReturnType.NORMAL.value, ret)))
            except Exception as e:
                socket.send(self._encoding.pack((ReturnType.EXCEPTION.value, e)))

    def _invoke(self, function: Optional[str], args: List[Any]) -> Any:
        """Call an exposed method of the service (or nothing at all for pings)."""
        if function is None:
            return None

        if function not in self._exposed:
            raise AttributeError(f"service has no exposed method '{function}'")

        return getattr(self.service, function)(*args)


class Client(Base):
    """
    RPC client to invoke methods on a service instance exposed by an RPC server.

    A single client can be used by multiple threads and will internally create a
    socket per thread, because REQ sockets require requests and replies in lockstep.

    Example:
    ```
    foo = rpc.Client(Foo, "tcp://127.0.0.1:7878")
    c = foo.bar(1, 2)
    ```
    """

    def __init__(
        self,
        service_type: type,
        endpoint: str,
        token: Optional[str] = None,
        timeout_ms: int = -1,
    ) -> None:
        """
        Instantiate an RPC client for the service type at the given endpoint.

        The endpoint should follow the format of endpoint in zmq_connect
        (http://api.zeromq.org/3-2:zmq-connect), for example "tcp://127.0.0.1:7878".
        """
        super().__init__(service_type)

        self.endpoint = endpoint
        self.token = token
        self.timeout_ms = timeout_ms

        self.context = zmq.Context()

        self._socket_pool: Dict[threading.Thread, zmq.Socket] = {}
        self._socket_pool_lock = threading.Lock()

    def _socket(self) -> zmq.Socket:
        """Return the socket to be used for the current thread."""
        t = threading.current_thread()

        with self._socket_pool_lock:
            if t not in self._socket_pool:
                sock = self.context.socket(zmq.REQ)

                sock.setsockopt(zmq.RCVTIMEO, self.timeout_ms)
                sock.setsockopt(zmq.SNDTIMEO, self.timeout_ms)
                sock.setsockopt(zmq.LINGER, 0)

                sock.connect(self.endpoint)

                self._socket_pool[t] = sock

            return self._socket_pool[t]

    def ping(self) -> None:
        """Check if the service is available, raising IOError if it is not."""
        self.__getattr__(None)()

    def close(self) -> None:
        """Close the client sockets and their ZeroMQ context."""
        with self._socket_pool_lock:
            for sock in self._socket_pool.values():
                sock.close(linger=0)

            self._socket_pool.clear()

        self.context.destroy(linger=0)

    def __del__(self) -> None:
        """Release sockets when the client is garbage collected."""
        self.close()

    @property
    def socket_count(self) -> int:
        """Return the number of sockets for this client."""
        with self._socket_pool_lock:
            return len(self._socket_pool)

    @staticmethod
    def _summarize_args(args: tuple) -> Tuple[str, ...]:
        """Summarize a tuple of function arguments."""
        return tuple([summarize(arg) for arg in args])

    def __getattr__(self, name: Optional[str]) -> Callable[..., Any]:
        """Retrieve a wrapper to call the specified remote function."""

        def fn(*args: Any) -> Any:
            """
            Call the wrapped remote function with the given arguments.

            ZeroMQ connections are stateless so the token is sent again with every call.
            A socket that timed out is discarded, since a REQ socket cannot send again
            before it has received the reply to its previous request.
            """
            sock = self._socket()

            t_call = time.time()

            sock.send(self._encoding.pack((self.token, name, *args)))

            try:
                typ, *ret = self._encoding.unpack(sock.recv())
            except zmq.ZMQError:
                with self._socket_pool_lock:
                    self._socket_pool.pop(threading.current_thread(), None)
                sock.close(linger=0)

                raise IOError("rpc call timed out")

            # Explicit check before logging because _summarize_args is relatively slow
            if log.isEnabledFor(logging.DEBUG):
                t_millis = round((time.time() - t_call) * 1000)
                log.debug(f"rpc::{name}{self._summarize_args(args)} - {t_millis} ms")

            if typ == ReturnType.NORMAL.value:
                return ret[0]
            elif typ == ReturnType.EXCEPTION.value:
                raise ret[0]
            elif typ == ReturnType.TOKEN_ERROR.value:
                raise InvalidTokenError("token mismatch between client and server")
            else:
                raise ValueError(f"unexpected return type {typ}")

        return fn
