# personality package - traits, genesis lock, evolution and persona text
