"""Minimal demonstration of tool calling plus structured output."""

from typing import List

from pydantic import BaseModel

from gigachat_core import ChatOptions, GigaChatModel, Message, function_tool
from gigachat_core.chat.options import VIRTUAL_FUNCTION_STRUCTURED_OUTPUT, merge_options


class CityWeather(BaseModel):
    city: str
    temperature: int
    summary: str


def get_temperature(city: str) -> int:
    """Returns the current temperature in Celsius for a city."""
    return {"Москва": 12, "Казань": 9}.get(city, 15)


if __name__ == "__main__":
    model = GigaChatModel.from_settings()
    messages: List[Message] = [
        Message.system("Ты метеоролог. Отвечай кратко."),
        Message.user("Какая сейчас погода в Москве?"),
    ]
    options = merge_options(VIRTUAL_FUNCTION_STRUCTURED_OUTPUT, ChatOptions(tools=(function_tool(get_temperature),)))
    weather = model.call_entity(messages, CityWeather, options)
    print("User:", messages[-1].content)
    print("Model:", weather.model_dump_json(indent=2))
