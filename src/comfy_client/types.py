"""Type definitions for the ComfyUI client."""

# JSON type hierarchy (mirrors what the server's json module produces)
type JSONPrimitive = str | int | float | bool | None
type JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
type JSONObject = dict[str, JSONValue]
