"""
Motore di regole per agenda e coerenza dati dello studio.

Struttura:
- timespan.py       : TimeSpan e test di sovrapposizione [start,end)
- business_hours.py : controllo orario di apertura
- conflicts.py      : doppie prenotazioni del medico
- appointments.py   : crea / modifica / annulla appuntamenti
- plans.py          : versioni dei piani terapeutici (storico append-only)
- completions.py    : esercizi completati e annullamento
- invoices.py       : storno fatture con audit
- db.py / models.py / store.py : engine SQLAlchemy, modelli ORM, accesso ai record
- audit.py, clock.py, config.py, errors.py : collaboratori e configurazione
- api_main.py       : adapter FastAPI
- cli.py            : CLI operatore
"""
