"""Minimal demonstration of the advisor chain with RAG and chat memory."""

from advisor_core.api.service import chat_with_memory, get_vector_store, question_answer_with_basic_rag
from advisor_core.rag import Document

if __name__ == "__main__":
    get_vector_store().add(
        [Document(text="Advisors wrap every model call and run in ascending order.", metadata={"type": "intro"})]
    )
    question = "In what order do advisors run?"
    print("User:", question)
    print("Assistant:", question_answer_with_basic_rag(question))

    reply = chat_with_memory("My name is Ann.")
    print("Assistant:", chat_with_memory("What is my name?", reply["conversation_id"])["content"])
