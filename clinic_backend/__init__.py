"""
Motore di agenda per studio di psicologia.

Struttura:
- timeslots.py    : aritmetica "HH:MM", sovrapposizione intervalli, generazione slot
- availability.py : finestre di lavoro per psicologo, ricerca del primo slot libero
- store.py        : collezione appuntamenti, transizioni di stato, prenotazioni
- patients.py     : anagrafica pazienti/sale, disattivazione con annullamento a cascata
- db.py / models.py / repository.py : persistenza SQLAlchemy
- services.py     : use case (transazione + lock di scrittura)
- api_main.py     : API FastAPI
- cli.py          : console operativa via CLI
- seed.py         : dati iniziali
"""
