from .starlette_extension import StarletteQuayExtension

__all__ = ("StarletteQuayExtension",)
