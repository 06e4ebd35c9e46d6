"""
Topic layout of the thermostat on the broker.

    {prefix}/status/temperature   publish, retained  {"value": float, "timestamp": str}
    {prefix}/status/relay         publish, retained  {"value": bool,  "timestamp": str}
    {prefix}/status/setpoint      publish, retained  {"value": float, "timestamp": str}
    {prefix}/status/mode          publish, retained  {"value": "heat"|"off", "timestamp": str}
    {prefix}/status/online        publish + will     {"value": bool,  "timestamp": str}
    {prefix}/setpoint/set         subscribe          {"value": float}
    {prefix}/relay/set            subscribe          {"value": bool}
    {prefix}/mode/set             subscribe          {"value": "heat"|"off"}
"""

from dataclasses import dataclass

from thermostat.domain.exceptions import ConfigurationError

DEFAULT_TOPIC_PREFIX = "thermostat"


@dataclass(frozen=True)
class MQTTTopics:
    temperature: str
    relay: str
    setpoint: str
    mode: str
    online: str
    setpoint_command: str
    relay_command: str
    mode_command: str

    @classmethod
    def from_prefix(cls, prefix: str = DEFAULT_TOPIC_PREFIX) -> "MQTTTopics":
        prefix = (prefix or "").strip("/")
        if not prefix:
            prefix = DEFAULT_TOPIC_PREFIX
        if "+" in prefix or "#" in prefix:
            raise ConfigurationError(f"MQTT topic prefix may not contain wildcards: {prefix!r}")
        return cls(
            temperature=f"{prefix}/status/temperature",
            relay=f"{prefix}/status/relay",
            setpoint=f"{prefix}/status/setpoint",
            mode=f"{prefix}/status/mode",
            online=f"{prefix}/status/online",
            setpoint_command=f"{prefix}/setpoint/set",
            relay_command=f"{prefix}/relay/set",
            mode_command=f"{prefix}/mode/set",
        )

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {
            "status": {
                "temperature": self.temperature,
                "relay": self.relay,
                "setpoint": self.setpoint,
                "mode": self.mode,
                "online": self.online,
            },
            "commands": {
                "setpoint": self.setpoint_command,
                "relay": self.relay_command,
                "mode": self.mode_command,
            },
        }
