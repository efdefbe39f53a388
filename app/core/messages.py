from app.core.config import settings


class Messages:
    """
    Centralized store for user-facing labels.
    Routers attach them to error responses; the calendar view shows the
    feed labels next to the busy-interval counter.
    """

    @property
    def FEED_NOT_FOUND(self) -> str:
        return "Arquivo export.ics não encontrado"

    @property
    def FEED_UNREADABLE(self) -> str:
        return "Falha ao ler export.ics"

    @property
    def FEED_UPLOAD_FAILED(self) -> str:
        return "Falha ao processar o arquivo ICS"

    @property
    def LOGIN_REQUIRED(self) -> str:
        return "Faça login para continuar com a reserva"

    @property
    def OWNER_ONLY(self) -> str:
        return "Acesso negado. Apenas o proprietário pode acessar o dashboard."

    @property
    def DATES_UNAVAILABLE(self) -> str:
        return "As datas selecionadas não estão disponíveis"

    @property
    def BOOKING_CREATED(self) -> str:
        return "Reserva criada! Redirecionando para pagamento..."

    @property
    def PAYMENT_FAILED(self) -> str:
        return (
            f"Reserva registrada em {settings.project_name}, "
            f"mas o pagamento não pôde ser iniciado"
        )

    @property
    def BOOKING_NOT_FOUND(self) -> str:
        return "Reserva não encontrada"

    @property
    def STATUS_UPDATE_FAILED(self) -> str:
        return "Erro ao atualizar status"

    @property
    def BOOKING_ACCESS_DENIED(self) -> str:
        return "Você não tem acesso a esta reserva"

    @property
    def SYNC_NOT_FOUND(self) -> str:
        return "Sincronização não encontrada"

    @property
    def SYNC_STARTED(self) -> str:
        return "Sincronização iniciada"

    @property
    def SYNC_FAILED(self) -> str:
        return "Falha na sincronização do calendário"


messages = Messages()
