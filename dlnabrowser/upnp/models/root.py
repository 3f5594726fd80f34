from __future__ import annotations

from typing import TypedDict


class Icon(TypedDict):
    mimetype: str
    width: str
    height: str
    depth: str | None
    url: str


class IconList(TypedDict):
    icon: list[Icon]


class Service(TypedDict):
    serviceType: str
    serviceId: str
    SCPDURL: str
    controlURL: str
    eventSubURL: str


class ServiceList(TypedDict):
    service: list[Service]


class DeviceList(TypedDict):
    device: list[DeviceDescription]


class DeviceDescription(TypedDict):
    deviceType: str
    friendlyName: str
    UDN: str | None
    iconList: IconList | None
    serviceList: ServiceList | None
    deviceList: DeviceList | None
    presentationURL: str | None


class Root(TypedDict):
    specVersion: dict
    URLBase: str | None
    device: list[DeviceDescription]
