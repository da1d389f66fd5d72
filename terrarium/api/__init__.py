"""Inference backends."""
from terrarium.api.engine import InferenceEngine, InferenceEngineInitError
from terrarium.api.scripted import ScriptedInferenceEngine

__all__ = ["InferenceEngine", "InferenceEngineInitError", "ScriptedInferenceEngine"]
