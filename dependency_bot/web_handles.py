from aiohttp import web


async def index(request):
    return web.Response(text="Welcome to dependency-bot!")


async def ping(request):
    return web.Response()
