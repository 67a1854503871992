from aiogram.fsm.state import State, StatesGroup


class VisitStates(StatesGroup):
    waiting_for_ktp = State()
    review = State()
    editing_field = State()
    waiting_for_purpose = State()
