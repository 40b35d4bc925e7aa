"""Chat assistant proxy to the local Ollama runtime."""

from fastapi import APIRouter, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from yap.api.v1.schemas import ChatRequest, ChatResponse, LLMHealth, ModelsResponse
from yap.llm.proxy import LLMConnectionError, LLMTimeoutError, get_ollama_client

router = APIRouter(tags=["llm"])


@router.get("/llm/health", response_model=LLMHealth)
async def llm_health() -> LLMHealth:
    client = get_ollama_client()
    return LLMHealth(ollama_url=client.base_url, default_model=client.default_model)


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest) -> ChatResponse:
    history = [message.model_dump() for message in request.conversation_history]
    try:
        reply = await run_in_threadpool(
            get_ollama_client().chat,
            request.message,
            history,
            request.model,
            request.temperature,
        )
    except LLMTimeoutError as err:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(err)) from err
    except LLMConnectionError as err:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(err)
        ) from err
    return ChatResponse(**reply)


@router.get("/models", response_model=ModelsResponse)
async def list_models() -> ModelsResponse:
    client = get_ollama_client()
    try:
        models = await run_in_threadpool(client.list_models)
    except LLMConnectionError as err:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(err)
        ) from err
    return ModelsResponse(models=models, default=client.default_model)
