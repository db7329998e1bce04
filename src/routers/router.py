from dataclasses import dataclass

from fastapi import APIRouter


@dataclass
class Router:
    router: APIRouter
    prefix: str
