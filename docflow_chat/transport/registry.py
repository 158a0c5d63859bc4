"""流式接口配置。

本模块将“逻辑接口名”与“后端路径”解耦：

- 逻辑名（name）：在代码里使用的统一名称，例如 "brainstorm"。
- path：后端实际提供的路径，例如 "/api/v1/chat/brainstorm"。

上层只关心逻辑名，路径、默认温度以及帧格式由这里集中配置。"""

from dataclasses import dataclass
from typing import Literal, Mapping

FrameFormat = Literal["chat", "brainstorm"]


@dataclass(frozen=True)
class EndpointConfig:
    """单个流式接口的配置。"""

    name: str
    path: str
    default_temperature: float = 1.0
    frame_format: FrameFormat = "chat"


COMPLETIONS = EndpointConfig(name="completions", path="/api/v1/chat/completions")

BRAINSTORM = EndpointConfig(
    name="brainstorm",
    path="/api/v1/chat/brainstorm",
    default_temperature=1.2,
    frame_format="brainstorm",
)

AUTOCOMPLETE = EndpointConfig(name="autocomplete", path="/api/v1/chat/autocomplete", default_temperature=0.8)

POLISH = EndpointConfig(name="polish", path="/api/v1/chat/polish", default_temperature=0.7)


ENDPOINT_REGISTRY: Mapping[str, EndpointConfig] = {
    "completions": COMPLETIONS,
    "brainstorm": BRAINSTORM,
    "autocomplete": AUTOCOMPLETE,
    "polish": POLISH,
}


def get_endpoint(name: str) -> EndpointConfig:
    """根据逻辑名获取 EndpointConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in ENDPOINT_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown endpoint: {name!r}")
