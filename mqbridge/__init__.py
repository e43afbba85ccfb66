"""mqbridge — bridges MQTT discovery entities into composite bridged devices."""

__version__ = "0.1.0"
