"""Device owner used by the command line tool.

Plays the registry side of the remove/re-add cycle: every ``DeviceAdded``
gets a fresh controller, every ``DeviceRemoved`` shuts the current one down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from rtlsdr_control.controller.device import RTLSDRController, SupervisorFactory
from rtlsdr_control.core.config import ControllerSettings
from rtlsdr_control.core.models import DeviceDescriptor, Plan
from rtlsdr_control.gateway.events import DeviceAdded, DeviceRemoved, EventBus
from rtlsdr_control.gateway.registry import DeviceRegistry

logger = logging.getLogger(__name__)


class DeviceHost:
    """Creates, configures and retires controllers in response to bus events.

    Once a controller connects, the plan's settings are applied in order and
    streaming is started.

    Example:
        >>> host = DeviceHost(Plan(rate=48_000, settings={"frequency": 166.376}))
        >>> host.add(DeviceDescriptor(port="3", usb_path="1:4"))
        >>> ...
        >>> await host.close()
    """

    def __init__(
        self,
        plan: Plan,
        settings: ControllerSettings | None = None,
        bus: EventBus | None = None,
        registry: DeviceRegistry | None = None,
        supervisor_factory: SupervisorFactory | None = None,
    ) -> None:
        self.plan = plan
        self.settings = settings or ControllerSettings()
        self.bus = bus or EventBus()
        self.registry = registry or DeviceRegistry()
        self.supervisor_factory = supervisor_factory

        self.controllers: dict[str, RTLSDRController] = {}
        self.adds = 0
        self._retired: list[RTLSDRController] = []
        self._tasks: set[asyncio.Task[Any]] = set()

        self.bus.subscribe(DeviceAdded, self._on_added)
        self.bus.subscribe(DeviceRemoved, self._on_removed)

    def add(self, descriptor: DeviceDescriptor) -> None:
        """Announce a device on the bus."""
        self.bus.emit(DeviceAdded(descriptor))

    async def close(self) -> None:
        """Shut every controller down and wait for their servers to exit."""
        self.bus.unsubscribe(DeviceAdded, self._on_added)
        self.bus.unsubscribe(DeviceRemoved, self._on_removed)

        controllers = list(self.controllers.values()) + self._retired
        self.controllers.clear()
        self._retired = []

        for controller in controllers:
            controller.shutdown(cancel_recovery=True)
            self.registry.remove(controller.descriptor.port)

        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await asyncio.gather(*(c.wait_closed() for c in controllers), return_exceptions=True)

    def _on_added(self, event: DeviceAdded) -> None:
        descriptor = event.descriptor
        previous = self.controllers.pop(descriptor.port, None)
        if previous is not None:
            previous.shutdown(cancel_recovery=True)
        self._retired = [c for c in self._retired if c.descriptor.port != descriptor.port]

        entry = self.registry.add(descriptor)
        controller = RTLSDRController(
            descriptor,
            self.plan,
            entry,
            self.bus,
            settings=self.settings,
            supervisor_factory=self.supervisor_factory,
        )
        self.controllers[descriptor.port] = controller
        self.adds += 1

        logger.info(
            "Starting controller on port %s (hardware rate %d Hz)",
            descriptor.port,
            controller.hw_rate,
        )
        controller.init(callback=lambda: self._start_task(self._configure(controller)))

    def _on_removed(self, event: DeviceRemoved) -> None:
        port = event.descriptor.port
        controller = self.controllers.pop(port, None)
        if controller is not None:
            controller.shutdown()
            self._retired.append(controller)
        self.registry.remove(port)

    async def _configure(self, controller: RTLSDRController) -> None:
        for name, value in self.plan.settings.items():
            await controller.set_param(name, value)
        if await controller.start_stop(True):
            logger.info("Streaming from %s", controller.device_path)

    def _start_task(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
